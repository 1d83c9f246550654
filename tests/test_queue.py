from app.core.redis import Queues
from app.schemas.generation import GenerationRequest
from app.workers.queue import QueueManager


def make_request():
    return GenerationRequest(script_option="gpt", topic="mindfulness", voice_id="voice-1")


def test_job_id_is_the_process_id(fake_redis):
    manager = QueueManager(fake_redis)

    job = manager.enqueue_generation("process_1_abc", "u1", make_request())

    assert job.id == "process_1_abc"
    assert job.origin == Queues.GENERATION
    assert job.kwargs["request"]["topic"] == "mindfulness"
    assert manager.get_job("process_1_abc").meta["user_id"] == "u1"


def test_cancel_only_jobs_still_waiting(fake_redis):
    manager = QueueManager(fake_redis)
    manager.enqueue_generation("p1", "u1", make_request())

    assert manager.cancel_job("p1") is True
    assert manager.cancel_job("missing") is False


def test_queue_stats(fake_redis):
    manager = QueueManager(fake_redis)
    manager.enqueue_generation("p1", "u1", make_request())

    stats = manager.get_queue_stats()

    assert stats["queue"] == Queues.GENERATION
    assert stats["queued"] == 1
    assert stats["workers"] == 0


def test_queue_stats_report_outage(redis_server, fake_redis):
    manager = QueueManager(fake_redis)
    redis_server.connected = False

    stats = manager.get_queue_stats()

    assert "error" in stats
