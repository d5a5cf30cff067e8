import pytest

from models.stream_events import (
    AnswerFragment,
    AnswerFullText,
    Failure,
    HistoryAppended,
    StatusChanged,
    TranscriptionFragment,
    TurnComplete,
    decode_message,
    encode_event,
)
from services.realtime.errors import ProtocolViolation


class TestEncodeEvent:
    def test_transcription_topic_depends_on_new_turn_flag(self):
        assert encode_event(TranscriptionFragment("hi", new_turn=True)) == ("transcription-new-turn", "hi")
        assert encode_event(TranscriptionFragment("hi there")) == ("transcription-update", "hi there")

    def test_answer_events_share_one_topic(self):
        assert encode_event(AnswerFragment("a")) == ("answer-fragment", {"text": "a"})
        assert encode_event(AnswerFullText("ab")) == ("answer-fragment", {"fullText": "ab"})
        assert encode_event(TurnComplete()) == ("answer-fragment", {"turnComplete": True})

    def test_status_error_only_when_present(self):
        assert encode_event(StatusChanged("connected")) == ("status", {"status": "connected"})
        assert encode_event(StatusChanged("error", "bad key")) == ("status", {"status": "error", "error": "bad key"})

    def test_history_appended_payload(self):
        topic, payload = encode_event(HistoryAppended("s1", {"questionText": "q"}, [{"questionText": "q"}]))

        assert topic == "history-appended"
        assert payload == {"sessionId": "s1", "turn": {"questionText": "q"}, "fullHistory": [{"questionText": "q"}]}

    def test_failure_payload(self):
        assert encode_event(Failure("boom")) == ("failure", {"message": "boom"})


class TestDecodeMessage:
    def test_answer_fragment_variants(self):
        assert decode_message("answer-fragment", {"turnComplete": True}) == TurnComplete()
        assert decode_message("answer-fragment", {"fullText": "x"}) == AnswerFullText("x")
        assert decode_message("answer-fragment", {"text": "x"}) == AnswerFragment("x")

    def test_transcription_new_turn_flag(self):
        assert decode_message("transcription-new-turn", "q") == TranscriptionFragment("q", new_turn=True)

    @pytest.mark.parametrize(
        "topic,payload",
        [
            ("transcription-update", {"text": "not a string"}),
            ("answer-fragment", "plain text"),
            ("answer-fragment", {"other": 1}),
            ("status", {"status": "sleeping"}),
            ("history-appended", {"fullHistory": "nope"}),
            ("unknown-topic", {}),
        ],
    )
    def test_malformed_messages_raise(self, topic, payload):
        with pytest.raises(ProtocolViolation):
            decode_message(topic, payload)
