import re
import time

import pytest

from app.core.exceptions import ProcessNotFoundError
from app.core.redis import Keys
from app.schemas.generation import GenerationProcess, GenerationStage
from app.services.progress import ProgressStore, new_process_id


def test_read_unknown_process_raises(progress_store):
    with pytest.raises(ProcessNotFoundError):
        progress_store.read("missing")
    # Reading must not create a record as a side effect
    with pytest.raises(ProcessNotFoundError):
        progress_store.read("missing")


def test_create_and_read(progress_store):
    progress_store.create(GenerationProcess(process_id="p1", user_id="u1", voice_id="v1"))

    record = progress_store.read("p1")
    assert record.user_id == "u1"
    assert record.voice_id == "v1"
    assert record.progress == 0
    assert progress_store.exists("p1")


def test_merge_keeps_earlier_fields(progress_store):
    progress_store.create(GenerationProcess(process_id="p1", user_id="u1"))
    progress_store.merge("p1", progress=25, status="Generating script...")
    progress_store.merge("p1", script_text="hello")

    record = progress_store.read("p1")
    assert record.progress == 25
    assert record.status == "Generating script..."
    assert record.script_text == "hello"
    assert record.user_id == "u1"


def test_progress_never_decreases(progress_store):
    progress_store.merge("p1", progress=50)
    record = progress_store.merge("p1", progress=20)

    assert record.progress == 50
    assert progress_store.read("p1").progress == 50


def test_progress_is_clamped(progress_store):
    assert progress_store.merge("p1", progress=250).progress == 100


def test_append_only_fields_are_not_overwritten(progress_store):
    progress_store.merge("p1", ai_video_url="https://cdn.example.com/a.mp4")
    progress_store.merge("p1", ai_video_url="https://cdn.example.com/b.mp4")
    progress_store.merge("p1", ai_video_url=None)

    assert progress_store.read("p1").ai_video_url == "https://cdn.example.com/a.mp4"


def test_processes_are_independent(progress_store):
    progress_store.create(GenerationProcess(process_id="a", user_id="u1"))
    progress_store.create(GenerationProcess(process_id="b", user_id="u1"))

    progress_store.merge("a", progress=75, status="Creating final video...")
    progress_store.merge("b", progress=10, status="Uploading supporting media...")

    assert progress_store.read("a").progress == 75
    assert progress_store.read("b").progress == 10
    assert progress_store.read("b").status == "Uploading supporting media..."


def test_cancel_flag(progress_store):
    progress_store.create(GenerationProcess(process_id="p1"))
    assert not progress_store.is_cancel_requested("p1")

    progress_store.request_cancel("p1")

    assert progress_store.is_cancel_requested("p1")
    assert not progress_store.is_cancel_requested("p2")


def test_cancel_unknown_process_raises(progress_store):
    with pytest.raises(ProcessNotFoundError):
        progress_store.request_cancel("missing")


def test_merge_survives_backend_outage(redis_server, fake_redis):
    store = ProgressStore(fake_redis)
    store.create(GenerationProcess(process_id="p1", user_id="u1"))
    store.merge("p1", progress=25, script_text="hello")

    redis_server.connected = False
    record = store.merge("p1", progress=50, stage=GenerationStage.SYNTHESIZING)

    assert record.progress == 50
    assert record.script_text == "hello"
    assert record.user_id == "u1"
    assert not store.is_cancel_requested("p1")

    redis_server.connected = True
    # The outage write was lost, the next merge carries everything forward
    record = store.merge("p1", progress=75)
    assert store.read("p1").progress == 75
    assert record.script_text == "hello"


def test_record_is_stored_as_json(progress_store, fake_redis):
    progress_store.merge("p1", progress=5)
    raw = fake_redis.get(Keys.progress("p1"))
    assert GenerationProcess.model_validate_json(raw).progress == 5


def test_finished_record_is_not_reopened(progress_store):
    progress_store.create(GenerationProcess(process_id="p1", user_id="u1"))
    progress_store.merge(
        "p1", stage=GenerationStage.FAILED, progress=100,
        status="Error: Cancelled by user", error="Cancelled by user",
    )

    record = progress_store.merge("p1", stage=GenerationStage.STARTED, progress=5, status="Starting...")

    assert record.status == "Error: Cancelled by user"
    stored = progress_store.read("p1")
    assert stored.stage == GenerationStage.FAILED
    assert stored.progress == 100
    assert stored.to_outcome().kind == "failed"


def test_finished_record_is_not_reopened_during_outage(redis_server, fake_redis):
    store = ProgressStore(fake_redis)
    store.merge("p1", progress=100, status="Complete!", final_video_url="https://cdn.example.com/final.mp4")

    redis_server.connected = False
    record = store.merge("p1", progress=100, status="Error: late failure", error="late failure")

    assert record.status == "Complete!"
    assert record.error is None


def test_new_process_id_format():
    before = int(time.time() * 1000)
    process_id = new_process_id()
    after = int(time.time() * 1000)

    match = re.fullmatch(r"process_(\d+)_([a-z0-9]{8})", process_id)
    assert match
    assert before <= int(match.group(1)) <= after
    assert new_process_id() != process_id
