from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from fashion_studio.core.paths import LOGS_DIR
from fashion_studio.infra.db import crud
from fashion_studio.infra.db.models import CreditEvent, utcnow
from fashion_studio.infra.fashn.client import FashnClient
from fashion_studio.workers import tasks
from fashion_studio.workers.tasks import run_generation
from fashion_studio.workers.watchdog import sweep


def _submit(db, profile, **kwargs):
    gen = crud.create_generation(
        db,
        user_id=profile.id,
        model_image_url="http://testserver/storage/model-images/m.jpg",
        garment_image_url="http://testserver/storage/garment-images/g.jpg",
        category=kwargs.pop("category", "tops"),
        seed=None,
        samples=1,
        quality="balanced",
    )
    item = crud.create_queue_item(
        db, user_id=profile.id, generation_id=gen.id, max_retries=kwargs.pop("max_retries", 3)
    )
    return gen, item


def _provider(*status_answers, run_answer=None, downloads=None):
    """MockTransport that answers /run once and then replays status answers."""
    answers = iter(status_answers)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/run"):
            if run_answer is not None:
                return run_answer
            return httpx.Response(200, json={"id": "pred-1"})
        if "/status/" in request.url.path:
            return next(answers)
        if downloads is not None and str(request.url) in downloads:
            return httpx.Response(200, content=downloads[str(request.url)])
        return httpx.Response(404)

    return FashnClient("http://mock/v1", "secret", transport=httpx.MockTransport(handler))


def _done(*urls):
    return httpx.Response(200, json={"id": "pred-1", "status": "completed", "output": list(urls)})


def test_successful_generation_completes_and_charges_one_credit(db, user, events, storage, queue):
    profile, _ = user
    gen, item = _submit(db, profile)

    client = _provider(
        httpx.Response(200, json={"id": "pred-1", "status": "processing"}),
        _done("http://cdn/out-1.png", "http://cdn/out-2.png"),
    )
    status = run_generation(
        db, item.id, client=client, events=events, storage=storage, queue=queue,
        sleep=lambda s: None, mirror_results=False,
    )

    assert status == "completed"
    db.refresh(gen)
    db.refresh(item)
    db.refresh(profile)
    assert gen.status == "completed"
    assert gen.external_id == "pred-1"
    assert gen.result_urls == ["http://cdn/out-1.png", "http://cdn/out-2.png"]
    assert gen.processing_time is not None and gen.processing_time >= 0
    assert item.status == "completed"
    assert item.completed_at is not None
    assert profile.credits == 9

    charge = db.query(CreditEvent).filter(CreditEvent.reason == "generation").one()
    assert charge.delta == -1
    assert charge.generation_id == gen.id

    statuses = [e["new"]["status"] for e in events.of("generations", "UPDATE")]
    assert statuses == ["processing", "completed"]
    assert (LOGS_DIR / f"{gen.id}.log").exists()


def test_results_are_mirrored_into_storage(db, user, events, storage):
    profile, _ = user
    gen, item = _submit(db, profile)

    client = _provider(_done("http://cdn/out.png"), downloads={"http://cdn/out.png": b"\x89PNG fake"})
    run_generation(db, item.id, client=client, events=events, storage=storage, sleep=lambda s: None, mirror_results=True)

    db.refresh(gen)
    assert len(gen.result_urls) == 1
    url = gen.result_urls[0]
    assert url.startswith("http://testserver/storage/generated-results/")
    assert url.endswith(".png")
    assert (storage.root / "generated-results" / url.rsplit("/", 1)[1]).read_bytes() == b"\x89PNG fake"


def test_credit_balance_never_goes_negative(db, make_user, events, storage):
    profile, _ = make_user("zero@example.com", credits=0)
    gen, item = _submit(db, profile)

    run_generation(db, item.id, client=_provider(_done("http://cdn/x.png")), events=events, storage=storage,
                   sleep=lambda s: None, mirror_results=False)

    db.refresh(profile)
    assert profile.credits == 0


def test_provider_failure_fails_without_charging(db, user, events, storage, queue):
    profile, _ = user
    gen, item = _submit(db, profile)

    client = _provider(httpx.Response(200, json={"id": "pred-1", "status": "failed", "error": "bad garment"}))
    status = run_generation(db, item.id, client=client, events=events, storage=storage, queue=queue,
                            sleep=lambda s: None, mirror_results=False)

    assert status == "failed"
    db.refresh(gen)
    db.refresh(item)
    db.refresh(profile)
    assert gen.status == "failed"
    assert "bad garment" in gen.error_message
    assert item.status == "failed"
    assert profile.credits == 10
    assert queue.jobs == []


def test_transient_failure_is_requeued_until_retries_run_out(db, user, events, storage, queue):
    profile, _ = user
    gen, item = _submit(db, profile, max_retries=2)

    def busy():
        return _provider(run_answer=httpx.Response(503, text="overloaded"))

    for expected_retry in (1, 2):
        status = run_generation(db, item.id, client=busy(), events=events, storage=storage, queue=queue,
                                sleep=lambda s: None, mirror_results=False)
        assert status == "queued"
        db.refresh(item)
        db.refresh(gen)
        assert item.retry_count == expected_retry
        assert "503" in item.error_message
        assert gen.status == "pending"

    assert queue.item_ids == [str(item.id), str(item.id)]

    status = run_generation(db, item.id, client=busy(), events=events, storage=storage, queue=queue,
                            sleep=lambda s: None, mirror_results=False)
    assert status == "failed"
    db.refresh(gen)
    assert gen.status == "failed"
    assert len(queue.jobs) == 2


def test_client_error_is_not_retried(db, user, events, storage, queue):
    profile, _ = user
    gen, item = _submit(db, profile)

    client = _provider(run_answer=httpx.Response(400, json={"error": "invalid image url"}))
    status = run_generation(db, item.id, client=client, events=events, storage=storage, queue=queue,
                            sleep=lambda s: None, mirror_results=False)

    assert status == "failed"
    assert queue.jobs == []


def test_empty_output_fails(db, user, events, storage, queue):
    profile, _ = user
    gen, item = _submit(db, profile)

    status = run_generation(db, item.id, client=_provider(_done()), events=events, storage=storage, queue=queue,
                            sleep=lambda s: None, mirror_results=False)
    assert status == "failed"
    assert queue.jobs == []


def test_paused_or_missing_items_are_skipped(db, user, events, storage):
    profile, _ = user
    gen, item = _submit(db, profile)
    item.status = "paused"
    db.commit()

    def explode(request):
        raise AssertionError("provider must not be called")

    client = FashnClient("http://mock/v1", "secret", transport=httpx.MockTransport(explode))
    assert run_generation(db, item.id, client=client, events=events, storage=storage) is None

    db.refresh(gen)
    assert gen.status == "pending"
    assert events.events == []

    item_id = item.id
    crud.delete_generation(db, gen)
    assert run_generation(db, item_id, client=client, events=events, storage=storage) is None


def test_watchdog_fails_stuck_generations(db, user, events):
    profile, _ = user
    stuck_gen, stuck_item = _submit(db, profile)
    fresh_gen, fresh_item = _submit(db, profile)

    for gen, item, started in (
        (stuck_gen, stuck_item, utcnow() - timedelta(hours=1)),
        (fresh_gen, fresh_item, utcnow()),
    ):
        gen.status = "processing"
        item.status = "processing"
        item.started_at = started
    db.commit()

    assert sweep(db, events, timeout_seconds=900) == 1

    db.refresh(stuck_gen)
    db.refresh(stuck_item)
    db.refresh(fresh_gen)
    assert stuck_gen.status == "failed"
    assert stuck_gen.error_message.startswith("WORKER_TIMEOUT")
    assert stuck_item.status == "failed"
    assert fresh_gen.status == "processing"
    assert [e["new"]["id"] for e in events.of("generations", "UPDATE")] == [stuck_gen.id]


def test_worker_setup_failure_fails_the_item(db, user, events, monkeypatch):
    profile, _ = user
    gen, item = _submit(db, profile)

    def broken_client(*args, **kwargs):
        raise RuntimeError("FASHN_API_KEY not set")

    monkeypatch.setattr(tasks, "FashnClient", broken_client)
    monkeypatch.setattr(tasks, "get_redis", lambda: None)
    monkeypatch.setattr(tasks, "RedisEventBus", lambda conn: events)

    with pytest.raises(RuntimeError):
        tasks.process_generation(str(item.id))

    db.expire_all()
    item = crud.get_queue_item(db, item.id)
    gen = crud.get_generation(db, gen.id)
    assert item.status == "failed"
    assert gen.status == "failed"
    assert "FASHN_API_KEY not set" in gen.error_message
    assert item.retry_count == 0
    assert crud.count_inflight_generations(db, profile.id) == 0
    assert events.of("generations", "UPDATE")[-1]["new"]["status"] == "failed"

    db.refresh(profile)
    assert profile.credits == 10


def test_setup_failure_leaves_paused_items_alone(db, user, events):
    profile, _ = user
    gen, item = _submit(db, profile)
    item.status = "paused"
    db.commit()

    assert tasks.fail_unstarted(db, item.id, RuntimeError("boom"), events=events) is None
    db.refresh(item)
    assert item.status == "paused"
    assert events.events == []
