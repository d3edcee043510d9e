from datetime import datetime, timedelta

from rq.job import JobStatus

from creative_engine.core.config import settings
from creative_engine.core.redis import Queues
from creative_engine.models.job import GenerationJob
from creative_engine.workers import queue as queue_module
from creative_engine.workers import tasks
from creative_engine.workers.job_queue import JobQueue


class RecordingPipeline:
    def __init__(self):
        self.executed = []

    def execute(self, job_id, worker_id):
        self.executed.append((job_id, worker_id))
        return "done"


class DummyQueueManager:
    def __init__(self, ok=True):
        self.ok = ok
        self.dispatched = []

    def dispatch(self, job_id):
        self.dispatched.append(job_id)
        return self.ok


def test_worker_ids_are_unique() -> None:
    assert tasks.make_worker_id() != tasks.make_worker_id()


def test_run_generation_job_claims_then_executes(session_factory, create_job, monkeypatch) -> None:
    job_id = create_job()
    pipeline = RecordingPipeline()
    monkeypatch.setattr(tasks, "get_job_queue", lambda: JobQueue(session_factory))
    monkeypatch.setattr(tasks, "build_pipeline", lambda job_queue=None: pipeline)

    first = tasks.run_generation_job(job_id)
    second = tasks.run_generation_job(job_id)

    assert first["claimed"] is True
    assert first["status"] == "done"
    assert second == {"job_id": job_id, "claimed": False, "status": None}
    assert len(pipeline.executed) == 1


def test_sweep_requeues_stale_jobs_and_dispatches_oldest(session_factory, create_job, monkeypatch) -> None:
    stale_id = create_job(job_id="gen_stale")
    create_job(job_id="gen_waiting")
    job_queue = JobQueue(session_factory)
    job_queue.claim(stale_id, "dead-worker")

    db = session_factory()
    try:
        job = db.query(GenerationJob).filter(GenerationJob.id == stale_id).one()
        job.heartbeat_at = datetime.utcnow() - timedelta(minutes=settings.JOB_STALE_AFTER_MINUTES + 5)
        db.commit()
    finally:
        db.close()

    manager = DummyQueueManager()
    monkeypatch.setattr(tasks, "get_job_queue", lambda: job_queue)
    monkeypatch.setattr(queue_module, "get_queue_manager", lambda: manager)

    outcome = tasks.sweep_queue(batch=5)

    assert outcome["requeued"] == [stale_id]
    assert sorted(manager.dispatched) == ["gen_stale", "gen_waiting"]
    assert sorted(outcome["dispatched"]) == ["gen_stale", "gen_waiting"]


def test_sweep_tolerates_dispatch_failures(session_factory, create_job, monkeypatch) -> None:
    create_job(job_id="gen_waiting")
    manager = DummyQueueManager(ok=False)
    monkeypatch.setattr(tasks, "get_job_queue", lambda: JobQueue(session_factory))
    monkeypatch.setattr(queue_module, "get_queue_manager", lambda: manager)

    outcome = tasks.sweep_queue(batch=5)

    assert manager.dispatched == ["gen_waiting"]
    assert outcome["dispatched"] == []


class StubRQJob:
    def __init__(self, job_id, status=JobStatus.QUEUED):
        self.id = job_id
        self.status = status

    def get_status(self):
        return self.status


class RecordingRQQueue:
    def __init__(self):
        self.jobs = {}
        self.enqueued = []

    def fetch_job(self, job_id):
        return self.jobs.get(job_id)

    def enqueue(self, func, *args, job_id=None, **kwargs):
        self.enqueued.append(args)
        self.jobs[job_id] = StubRQJob(job_id)
        return self.jobs[job_id]


def test_repeated_sweeps_do_not_stack_rq_entries() -> None:
    manager = queue_module.QueueManager()
    rq_queue = RecordingRQQueue()
    manager._queues[Queues.GENERATION] = rq_queue

    assert manager.dispatch("gen_waiting") is True
    assert manager.dispatch("gen_waiting") is True
    assert rq_queue.enqueued == [("gen_waiting",)]

    rq_queue.jobs["generation-gen_waiting"].status = JobStatus.FAILED
    assert manager.dispatch("gen_waiting") is True
    assert len(rq_queue.enqueued) == 2


def test_started_run_does_not_block_a_dispatch() -> None:
    manager = queue_module.QueueManager()
    rq_queue = RecordingRQQueue()
    rq_queue.jobs["generation-gen_stale"] = StubRQJob("generation-gen_stale", JobStatus.STARTED)
    manager._queues[Queues.GENERATION] = rq_queue

    manager.dispatch("gen_stale")
    assert rq_queue.enqueued == [("gen_stale",)]
