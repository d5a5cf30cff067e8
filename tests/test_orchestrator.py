import asyncio

import pytest

from models.session_models import ProviderKind, SessionConfig, SessionState, StoredSettings
from services.conversation.reconciler import ConversationReconciler
from services.realtime.errors import CredentialError
from services.realtime.event_channel import InMemoryEventChannel
from services.realtime.orchestrator import SessionOrchestrator

from conftest import FakeChatAdapter, FakeStreamingAdapter, RecordingSink, no_sleep


class GatedStreamingAdapter(FakeStreamingAdapter):
    """Streaming adapter whose open blocks until the test releases it."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()

    async def open(self, config, callbacks):
        await self.gate.wait()
        return await super().open(config, callbacks)


class MemorySettingsStore:
    def __init__(self, fail: bool = False) -> None:
        self.saved = []
        self.fail = fail

    async def save(self, settings: StoredSettings) -> None:
        if self.fail:
            raise OSError("disk full")
        self.saved.append(settings)

    async def load(self):
        return self.saved[-1] if self.saved else None


class ExplodingSink:
    async def publish(self, topic, payload):
        raise RuntimeError("subscriber went away")


async def _wait_for_state(orchestrator, state):
    for _ in range(100):
        if orchestrator.state == state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"orchestrator never reached {state}")


class TestStart:
    @pytest.mark.asyncio
    async def test_start_publishes_connecting_then_connected(self, orchestrator, sink, streaming_config):
        result = await orchestrator.start(streaming_config)

        assert result.success
        assert orchestrator.state == SessionState.CONNECTED
        assert sink.statuses() == ["connecting", "connected"]
        assert orchestrator.session_id is not None

    @pytest.mark.asyncio
    async def test_second_start_while_connecting_is_rejected(self, sink, streaming_config):
        adapter = GatedStreamingAdapter()
        orchestrator = SessionOrchestrator(sinks=[sink], adapters={ProviderKind.STREAMING: adapter}, sleep=no_sleep)

        first = asyncio.create_task(orchestrator.start(streaming_config))
        await _wait_for_state(orchestrator, SessionState.CONNECTING)
        second = await orchestrator.start(streaming_config)
        adapter.gate.set()
        first_result = await first

        assert second.code == "AlreadyInitializing"
        assert first_result.success
        assert sink.statuses() == ["connecting", "connected"]

    @pytest.mark.asyncio
    async def test_unsupported_provider_leaves_state_untouched(self, orchestrator, sink):
        result = await orchestrator.start(SessionConfig(provider=ProviderKind.CHAT_B, credential="k"))

        assert result.code == "UnsupportedProvider"
        assert orchestrator.state == SessionState.IDLE
        assert sink.messages == []

    @pytest.mark.asyncio
    async def test_rejected_credential_fails_without_reconnecting(self, sink, streaming_config):
        adapter = FakeStreamingAdapter(open_errors=[CredentialError()])
        orchestrator = SessionOrchestrator(sinks=[sink], adapters={ProviderKind.STREAMING: adapter}, sleep=no_sleep)

        result = await orchestrator.start(streaming_config)

        assert result.code == "CredentialError"
        assert orchestrator.state == SessionState.ERROR
        assert sink.statuses() == ["connecting", "error"]
        assert sink.payloads("failure")
        assert orchestrator.reconnect_task is None
        assert adapter.open_calls == 1

    @pytest.mark.asyncio
    async def test_restart_replaces_session_and_clears_history(self, orchestrator, streaming_adapter, streaming_config):
        await orchestrator.start(streaming_config)
        callbacks = streaming_adapter.callbacks
        await callbacks.on_transcription("q")
        await callbacks.on_answer_part("a")
        await callbacks.on_generation_complete()
        assert len(orchestrator.history) == 1

        await orchestrator.start(streaming_config)

        assert streaming_adapter.close_calls == 1
        assert len(orchestrator.history) == 0

    @pytest.mark.asyncio
    async def test_successful_start_persists_settings(self, sink, streaming_adapter, streaming_config):
        store = MemorySettingsStore()
        orchestrator = SessionOrchestrator(
            sinks=[sink],
            adapters={ProviderKind.STREAMING: streaming_adapter},
            settings_store=store,
            sleep=no_sleep,
        )

        await orchestrator.start(streaming_config)

        assert store.saved == [StoredSettings.from_config(streaming_config)]
        assert await orchestrator.stored_settings() == store.saved[0]

    @pytest.mark.asyncio
    async def test_settings_failure_does_not_fail_start(self, sink, streaming_adapter, streaming_config):
        orchestrator = SessionOrchestrator(
            sinks=[sink],
            adapters={ProviderKind.STREAMING: streaming_adapter},
            settings_store=MemorySettingsStore(fail=True),
            sleep=no_sleep,
        )

        result = await orchestrator.start(streaming_config)

        assert result.success
        assert orchestrator.state == SessionState.CONNECTED


class TestStop:
    @pytest.mark.asyncio
    async def test_stop_twice_emits_closed_once(self, orchestrator, sink, streaming_adapter, streaming_config):
        await orchestrator.start(streaming_config)

        first = await orchestrator.stop()
        second = await orchestrator.stop()

        assert first.success and second.success
        assert sink.statuses() == ["connecting", "connected", "closed"]
        assert streaming_adapter.close_calls == 1
        assert orchestrator.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_silent(self, orchestrator, sink):
        result = await orchestrator.stop()

        assert result.success
        assert sink.messages == []

    @pytest.mark.asyncio
    async def test_stop_while_connecting_discards_the_late_handle(self, sink, streaming_config):
        adapter = GatedStreamingAdapter()
        orchestrator = SessionOrchestrator(sinks=[sink], adapters={ProviderKind.STREAMING: adapter}, sleep=no_sleep)

        pending = asyncio.create_task(orchestrator.start(streaming_config))
        await _wait_for_state(orchestrator, SessionState.CONNECTING)
        await orchestrator.stop()
        adapter.gate.set()
        result = await pending

        assert result.code == "SessionInactiveError"
        assert orchestrator.state == SessionState.CLOSED
        assert adapter.close_calls == 1
        assert sink.statuses() == ["connecting", "closed"]

    @pytest.mark.asyncio
    async def test_stop_drops_the_in_flight_exchange(self, orchestrator, streaming_adapter, streaming_config):
        await orchestrator.start(streaming_config)
        await streaming_adapter.callbacks.on_transcription("half a question")
        await orchestrator.stop()

        await orchestrator.start(streaming_config)
        await streaming_adapter.callbacks.on_answer_part("answer")
        await streaming_adapter.callbacks.on_generation_complete()

        assert len(orchestrator.history) == 0

    @pytest.mark.asyncio
    async def test_callbacks_from_a_stopped_session_are_ignored(self, orchestrator, sink, streaming_adapter, streaming_config):
        await orchestrator.start(streaming_config)
        stale = streaming_adapter.callbacks
        await orchestrator.stop()
        published = len(sink.messages)

        await stale.on_transcription("late")
        await stale.on_answer_part("late answer")
        await stale.on_terminated("socket closed", None)

        assert len(sink.messages) == published
        assert orchestrator.reconnect_task is None


class TestStreamingExchange:
    @pytest.mark.asyncio
    async def test_exchange_reaches_history_and_reconciler(self, orchestrator, sink, streaming_adapter, streaming_config):
        channel = InMemoryEventChannel()
        subscription = channel.subscribe()
        orchestrator.add_sink(channel)
        await orchestrator.start(streaming_config)
        callbacks = streaming_adapter.callbacks

        await callbacks.on_transcription("What is ")
        await callbacks.on_transcription("Python?")
        await callbacks.on_answer_part("A ")
        await callbacks.on_answer_part("[ping]")
        await callbacks.on_answer_part("language.")
        await callbacks.on_generation_complete()

        assert sink.payloads("transcription-new-turn") == ["What is "]
        assert sink.payloads("transcription-update") == ["What is Python?"]
        assert {"fullText": "A language."} in sink.payloads("answer-fragment")
        assert sink.payloads("answer-fragment")[-1] == {"turnComplete": True}
        appended = sink.payloads("history-appended")
        assert len(appended) == 1
        assert appended[0]["turn"]["questionText"] == "What is Python?"
        assert appended[0]["turn"]["answerText"] == "A language."

        channel.close()
        reconciler = ConversationReconciler()
        await reconciler.consume(subscription)
        assert [(turn.user_message, turn.ai_response) for turn in reconciler.conversations] == [
            ("What is Python?", "A language.")
        ]
        assert reconciler.status == "connected"

    @pytest.mark.asyncio
    async def test_exchange_without_question_is_not_archived(self, orchestrator, sink, streaming_adapter, streaming_config):
        await orchestrator.start(streaming_config)
        await streaming_adapter.callbacks.on_answer_part("Hello, how can I help?")
        await streaming_adapter.callbacks.on_generation_complete()

        assert len(orchestrator.history) == 0
        assert sink.payloads("history-appended") == []
        assert sink.payloads("answer-fragment")[-1] == {"turnComplete": True}

    @pytest.mark.asyncio
    async def test_typed_question_is_archived_with_the_streamed_answer(self, orchestrator, streaming_adapter, streaming_config):
        await orchestrator.start(streaming_config)

        result = await orchestrator.send_text("  Explain GIL  ")
        await streaming_adapter.callbacks.on_answer_part("A lock.")
        await streaming_adapter.callbacks.on_generation_complete()

        assert result.success
        assert streaming_adapter.sent_text == ["Explain GIL"]
        assert orchestrator.history.entries[0].question_text == "Explain GIL"

    @pytest.mark.asyncio
    async def test_audio_is_forwarded(self, orchestrator, streaming_adapter, streaming_config):
        await orchestrator.start(streaming_config)

        result = await orchestrator.send_audio("AAAA")

        assert result.success
        assert streaming_adapter.audio == ["AAAA"]

    @pytest.mark.asyncio
    async def test_non_credential_provider_error_keeps_session(self, orchestrator, sink, streaming_adapter, streaming_config):
        await orchestrator.start(streaming_config)

        await streaming_adapter.callbacks.on_error("rate limit reached")

        assert orchestrator.state == SessionState.CONNECTED
        assert sink.payloads("failure") == [{"message": "rate limit reached"}]

    @pytest.mark.asyncio
    async def test_credential_error_event_ends_session(self, orchestrator, sink, streaming_adapter, streaming_config):
        await orchestrator.start(streaming_config)

        await streaming_adapter.callbacks.on_error("Incorrect API key provided")

        assert orchestrator.state == SessionState.ERROR
        assert sink.statuses()[-1] == "error"
        assert orchestrator.reconnect_task is None

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_block_other_sinks(self, streaming_adapter, streaming_config):
        healthy = RecordingSink()
        orchestrator = SessionOrchestrator(
            sinks=[ExplodingSink(), healthy],
            adapters={ProviderKind.STREAMING: streaming_adapter},
            sleep=no_sleep,
        )

        result = await orchestrator.start(streaming_config)

        assert result.success
        assert healthy.statuses() == ["connecting", "connected"]


class TestSending:
    @pytest.mark.asyncio
    async def test_send_without_session_is_rejected(self, orchestrator):
        result = await orchestrator.send_text("hello")

        assert not result.success
        assert result.code == "SessionInactiveError"

    @pytest.mark.asyncio
    async def test_empty_text_is_rejected(self, orchestrator, chat_config):
        await orchestrator.start(chat_config)

        result = await orchestrator.send_text("   ")

        assert result.code == "ValueError"

    @pytest.mark.asyncio
    async def test_chat_provider_receives_history_oldest_first(self, orchestrator, sink, chat_adapter, chat_config):
        chat_adapter.replies = ["A1", "A2"]
        await orchestrator.start(chat_config)

        first = await orchestrator.send_text("Q1")
        second = await orchestrator.send_text("Q2")

        assert first.text == "A1" and second.text == "A2"
        assert chat_adapter.requests[0]["history"] == []
        assert chat_adapter.requests[1]["history"] == [
            {"role": "user", "content": "Q1"},
            {"role": "assistant", "content": "A1"},
        ]
        assert [turn.question_text for turn in orchestrator.history.entries] == ["Q1", "Q2"]
        assert {"text": "A2"} in sink.payloads("answer-fragment")

    @pytest.mark.asyncio
    async def test_chat_screenshot_is_archived_as_screenshot_analysis(self, orchestrator, chat_adapter, chat_config):
        chat_adapter.replies = ["A chart of sales."]
        await orchestrator.start(chat_config)

        result = await orchestrator.send_image("aGVsbG8=")

        assert result.text == "A chart of sales."
        assert orchestrator.history.entries[0].question_text == "Screenshot analysis"

    @pytest.mark.asyncio
    async def test_audio_is_unsupported_on_chat_providers(self, orchestrator, chat_config):
        await orchestrator.start(chat_config)

        result = await orchestrator.send_audio("AAAA")

        assert result.code == "UnsupportedOperation"

    @pytest.mark.asyncio
    async def test_chat_credential_failure_ends_session(self, orchestrator, sink, chat_adapter, chat_config):
        chat_adapter.replies = [CredentialError()]
        await orchestrator.start(chat_config)

        result = await orchestrator.send_text("Q")

        assert result.code == "CredentialError"
        assert orchestrator.state == SessionState.ERROR
        assert sink.statuses()[-1] == "error"

    @pytest.mark.asyncio
    async def test_unexpected_chat_failure_is_reported(self, sink, chat_config):
        adapter = FakeChatAdapter(replies=[RuntimeError("boom")])
        orchestrator = SessionOrchestrator(sinks=[sink], adapters={ProviderKind.CHAT_A: adapter}, sleep=no_sleep)
        await orchestrator.start(chat_config)

        result = await orchestrator.send_text("Q")

        assert result.code == "ProviderError"
        assert orchestrator.state == SessionState.CONNECTED
        assert len(orchestrator.history) == 0
