import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from dundra_live.analysis.context_store import GameContextStore
from dundra_live.analysis.scheduler import BatchScheduler
from dundra_live.analysis.schemas import AnalysisResult
from dundra_live.core.errors import ContextNotFoundError
from dundra_live.transcription.types import TranscriptionSegment


def _setup(idle_flush_seconds=0.0, result=None):
    store = GameContextStore()
    store.create_game_context("camp-1", "sess-1")
    engine = SimpleNamespace(analyze_transcription=AsyncMock(return_value=result or AnalysisResult.empty("quiet")))
    publisher = SimpleNamespace(publish=AsyncMock())
    scheduler = BatchScheduler(engine, store, publisher, batch_size=5, idle_flush_seconds=idle_flush_seconds)
    return scheduler, engine, store, publisher


def _segments(count, start=0):
    return [TranscriptionSegment(text=f"line {i}", speaker="DM") for i in range(start, start + count)]


@pytest.mark.asyncio
async def test_fifth_segment_triggers_single_batch_in_order():
    scheduler, engine, _, _ = _setup()
    segments = _segments(5)

    for segment in segments[:4]:
        assert scheduler.add_segment("sess-1", segment) is None
    assert engine.analyze_transcription.await_count == 0
    assert scheduler.pending_count("sess-1") == 4

    task = scheduler.add_segment("sess-1", segments[4])
    await task

    engine.analyze_transcription.assert_awaited_once()
    batch, _context = engine.analyze_transcription.await_args.args
    assert batch == segments
    assert scheduler.pending_count("sess-1") == 0
    assert not scheduler.is_in_flight("sess-1")


@pytest.mark.asyncio
async def test_sessions_are_batched_independently():
    scheduler, engine, store, _ = _setup()
    store.create_game_context("camp-1", "sess-2")

    for segment in _segments(4):
        scheduler.add_segment("sess-1", segment)
        scheduler.add_segment("sess-2", segment)

    assert engine.analyze_transcription.await_count == 0
    assert scheduler.pending_count("sess-2") == 4


@pytest.mark.asyncio
async def test_only_one_batch_in_flight_per_session():
    gate = asyncio.Event()
    scheduler, engine, _, _ = _setup()

    async def slow(batch, context):
        await gate.wait()
        return AnalysisResult.empty("done")

    engine.analyze_transcription.side_effect = slow

    task = None
    for segment in _segments(5):
        task = scheduler.add_segment("sess-1", segment) or task
    await asyncio.sleep(0)
    for segment in _segments(6, start=5):
        assert scheduler.add_segment("sess-1", segment) is None
    assert scheduler.pending_count("sess-1") == 6
    assert engine.analyze_transcription.await_count == 1

    gate.set()
    await task

    assert engine.analyze_transcription.await_count == 2
    second_batch = engine.analyze_transcription.await_args_list[1].args[0]
    assert [s.text for s in second_batch] == [f"line {i}" for i in range(5, 11)]
    assert scheduler.pending_count("sess-1") == 0


@pytest.mark.asyncio
async def test_result_folded_into_context_and_published():
    result = AnalysisResult.model_validate(
        {
            "gameStateUpdate": {"gameState": "combat", "recentEvents": ["ambush"]},
            "cardGenerationTriggers": [{"type": "npc", "priority": 5, "description": "Goblin boss"}],
            "characterUpdates": [{"characterName": "Aria", "updateType": "healing", "value": 4}],
            "contextSummary": "Ambush",
        }
    )
    scheduler, _, store, publisher = _setup(result=result)
    store.update_game_context("sess-1", {"recentEvents": ["arrived"], "gameState": "exploration"})

    await scheduler.submit("sess-1", _segments(2))

    context = store.get_game_context("sess-1")
    assert context.game_state.value == "combat"
    assert context.recent_events == ["arrived", "ambush"]

    events = [call.args[1] for call in publisher.publish.await_args_list]
    assert events == ["analysis:complete", "cards:generate_triggers", "characters:updates"]
    complete = publisher.publish.await_args_list[0].args[2]
    assert complete["sessionId"] == "sess-1"
    assert complete["analysisResult"]["contextSummary"] == "Ambush"
    assert complete["context"]["recentEvents"] == ["arrived", "ambush"]
    triggers = publisher.publish.await_args_list[1].args[2]["triggers"]
    assert triggers[0]["description"] == "Goblin boss"


@pytest.mark.asyncio
async def test_empty_result_publishes_only_completion():
    scheduler, _, store, publisher = _setup()

    await scheduler.submit("sess-1", _segments(1))

    publisher.publish.assert_awaited_once()
    assert publisher.publish.await_args.args[1] == "analysis:complete"
    assert store.get_game_context("sess-1").game_state.value == "unknown"


@pytest.mark.asyncio
async def test_submit_without_context_raises():
    scheduler, engine, _, _ = _setup()

    with pytest.raises(ContextNotFoundError):
        await scheduler.submit("ghost", _segments(1))
    engine.analyze_transcription.assert_not_awaited()


@pytest.mark.asyncio
async def test_context_removed_mid_analysis_drops_batch():
    scheduler, engine, store, publisher = _setup()

    async def vanish(batch, context):
        store.remove_game_context("sess-1")
        return AnalysisResult.empty()

    engine.analyze_transcription.side_effect = vanish

    task = None
    for segment in _segments(5):
        task = scheduler.add_segment("sess-1", segment) or task
    assert await task is None

    publisher.publish.assert_not_awaited()
    assert store.get_game_context("sess-1") is None


@pytest.mark.asyncio
async def test_idle_flush_submits_partial_batch():
    scheduler, engine, _, _ = _setup(idle_flush_seconds=0.01)

    for segment in _segments(2):
        scheduler.add_segment("sess-1", segment)
    await asyncio.sleep(0.05)

    engine.analyze_transcription.assert_awaited_once()
    assert len(engine.analyze_transcription.await_args.args[0]) == 2
    assert scheduler.pending_count("sess-1") == 0


@pytest.mark.asyncio
async def test_idle_flush_disabled_with_zero():
    scheduler, engine, _, _ = _setup(idle_flush_seconds=0)

    for segment in _segments(2):
        scheduler.add_segment("sess-1", segment)
    await asyncio.sleep(0.03)

    engine.analyze_transcription.assert_not_awaited()
    assert scheduler.pending_count("sess-1") == 2


@pytest.mark.asyncio
async def test_flush_and_discard():
    scheduler, engine, _, _ = _setup(idle_flush_seconds=10)

    scheduler.add_segment("sess-1", TranscriptionSegment(text="one"))
    result = await scheduler.flush("sess-1")
    assert result.context_summary == "quiet"
    assert await scheduler.flush("sess-1") is None

    scheduler.add_segment("sess-1", TranscriptionSegment(text="two"))
    scheduler.discard("sess-1")
    assert scheduler.pending_count("sess-1") == 0
    assert engine.analyze_transcription.await_count == 1
    await scheduler.close()


def _tracking_engine(engine, gate):
    """Make the engine wait on `gate` and record the peak number of concurrent calls."""
    stats = {"active": 0, "peak": 0}

    async def analyze(batch, context):
        stats["active"] += 1
        stats["peak"] = max(stats["peak"], stats["active"])
        await gate.wait()
        await asyncio.sleep(0.01)
        stats["active"] -= 1
        return AnalysisResult.empty("done")

    engine.analyze_transcription.side_effect = analyze
    return stats


@pytest.mark.asyncio
async def test_flush_waits_for_batch_started_meanwhile():
    scheduler, engine, _, _ = _setup()
    gate = asyncio.Event()
    stats = _tracking_engine(engine, gate)

    first = None
    for segment in _segments(5):
        first = scheduler.add_segment("sess-1", segment) or first
    flushing = asyncio.create_task(scheduler.flush("sess-1"))
    await asyncio.sleep(0)
    # Six more arrive the moment the first batch ends: five start a batch, one stays pending
    first.add_done_callback(lambda _: [scheduler.add_segment("sess-1", s) for s in _segments(6, start=5)])
    gate.set()
    await flushing

    assert stats["peak"] == 1
    assert engine.analyze_transcription.await_count == 3
    assert [len(call.args[0]) for call in engine.analyze_transcription.await_args_list] == [5, 5, 1]
    assert scheduler.pending_count("sess-1") == 0
    assert not scheduler.is_in_flight("sess-1")


@pytest.mark.asyncio
async def test_direct_submit_counts_as_in_flight():
    scheduler, engine, _, _ = _setup()
    gate = asyncio.Event()
    stats = _tracking_engine(engine, gate)

    submitting = asyncio.create_task(scheduler.submit("sess-1", _segments(2)))
    await asyncio.sleep(0)
    assert scheduler.is_in_flight("sess-1")

    for segment in _segments(5, start=2):
        assert scheduler.add_segment("sess-1", segment) is None
    gate.set()
    await submitting
    follow_up = scheduler._in_flight.get("sess-1")
    assert follow_up is not None
    await follow_up

    assert stats["peak"] == 1
    assert [len(call.args[0]) for call in engine.analyze_transcription.await_args_list] == [2, 5]
    assert not scheduler.is_in_flight("sess-1")


@pytest.mark.asyncio
async def test_discard_during_submit_reports_missing_context():
    scheduler, engine, _, _ = _setup()
    _tracking_engine(engine, asyncio.Event())

    submitting = asyncio.create_task(scheduler.submit("sess-1", _segments(1)))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    scheduler.discard("sess-1")

    with pytest.raises(ContextNotFoundError):
        await submitting
    assert not scheduler.is_in_flight("sess-1")


@pytest.mark.asyncio
async def test_flush_soon_runs_in_background_and_close_cancels():
    scheduler, engine, _, _ = _setup(idle_flush_seconds=10)
    scheduler.add_segment("sess-1", TranscriptionSegment(text="one"))

    result = await scheduler.flush_soon("sess-1")

    assert result.context_summary == "quiet"
    engine.analyze_transcription.assert_awaited_once()

    gate = asyncio.Event()
    _tracking_engine(engine, gate)
    scheduler.add_segment("sess-1", TranscriptionSegment(text="two"))
    pending = scheduler.flush_soon("sess-1")
    await asyncio.sleep(0)
    await scheduler.close()

    assert pending.cancelled()
    assert not scheduler.is_in_flight("sess-1")
