"""Tests for the incremental SSE frame parser."""

import json
import logging

from pilot_llm.llm.sse import FrameParser, iter_events
from pilot_llm.types import DoneEvent, TokenEvent


def _frame(text: str) -> bytes:
    payload = {"choices": [{"delta": {"content": text}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


def _feed_all(chunks: list[bytes]) -> list:
    parser = FrameParser()
    events = []
    for chunk in chunks:
        events.extend(parser.feed(chunk))
    events.extend(parser.finish())
    return events


async def _aiter(chunks: list[bytes]):
    for chunk in chunks:
        yield chunk


class TestFrameParser:
    def test_single_frame_then_done_marker(self):
        parser = FrameParser()
        events = list(parser.feed(b'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\n'))
        assert events == [TokenEvent("Hi")]
        events = list(parser.feed(b"data: [DONE]\n\n"))
        assert events == [DoneEvent()]
        assert parser.finished
        assert list(parser.feed(_frame("late"))) == []
        assert list(parser.finish()) == []

    def test_split_multibyte_character(self):
        data = _frame("héllo ✓")
        cut = data.index("✓".encode("utf-8")) + 1  # inside the 3-byte sequence
        events = _feed_all([data[:cut], data[cut:]])
        assert events == [TokenEvent("héllo ✓"), DoneEvent()]
        assert "�" not in events[0].text

    def test_byte_by_byte(self):
        data = _frame("日本") + _frame("語")
        events = _feed_all([data[i:i + 1] for i in range(len(data))])
        assert events == [TokenEvent("日本"), TokenEvent("語"), DoneEvent()]

    def test_partial_frame_buffered(self):
        parser = FrameParser()
        data = _frame("abc")
        assert list(parser.feed(data[:10])) == []
        assert list(parser.feed(data[10:])) == [TokenEvent("abc")]

    def test_feed_consumes_chunk_without_iteration(self):
        parser = FrameParser()
        data = _frame("kept") + b"data: [DONE]\n\n"
        parser.feed(data[:12])
        assert parser.buffer == data[:12].decode("utf-8")
        assert parser.feed(data[12:]) == [TokenEvent("kept"), DoneEvent()]
        assert parser.finished

    def test_remainder_flushed_on_close(self):
        events = _feed_all([b'data: {"choices":[{"delta":{"content":"tail"}}]}'])
        assert events == [TokenEvent("tail"), DoneEvent()]

    def test_malformed_json_is_skipped(self, caplog):
        chunks = [b"data: {not json}\n\n", _frame("ok")]
        with caplog.at_level(logging.WARNING, logger="pilot_llm.llm.sse"):
            events = _feed_all(chunks)
        assert events == [TokenEvent("ok"), DoneEvent()]
        assert "malformed" in caplog.text

    def test_comments_blank_and_other_fields_ignored(self):
        data = (
            b": keep-alive\n\n"
            b"event: message\nid: 7\n"
            b'data: {"choices":[{"delta":{"content":"x"}}]}\n\n'
        )
        assert _feed_all([data]) == [TokenEvent("x"), DoneEvent()]

    def test_multiple_data_lines_in_one_frame(self):
        data = (
            b'data: {"choices":[{"delta":{"content":"a"}}]}\n'
            b'data: {"choices":[{"delta":{"content":"b"}}]}\n\n'
        )
        assert _feed_all([data]) == [TokenEvent("a"), TokenEvent("b"), DoneEvent()]

    def test_done_marker_stops_mid_frame(self):
        data = (
            b'data: {"choices":[{"delta":{"content":"a"}}]}\n'
            b"data: [DONE]\n"
            b'data: {"choices":[{"delta":{"content":"b"}}]}\n\n'
        )
        assert _feed_all([data]) == [TokenEvent("a"), DoneEvent()]

    def test_crlf_delimiters(self):
        data = b'data: {"choices":[{"delta":{"content":"w"}}]}\r\n\r\ndata: [DONE]\r\n\r\n'
        assert _feed_all([data[:-3], data[-3:]]) == [TokenEvent("w"), DoneEvent()]

    def test_payload_without_text_yields_nothing(self):
        data = b'data: {"choices":[{"delta":{"role":"assistant"}}]}\n\n'
        assert _feed_all([data]) == [DoneEvent()]

    def test_data_without_space(self):
        assert _feed_all([b'data:{"content":"tight"}\n\n']) == [TokenEvent("tight"), DoneEvent()]


class TestIterEvents:
    async def test_stream_closure_emits_done(self):
        events = [e async for e in iter_events(_aiter([_frame("a"), _frame("b")]))]
        assert events == [TokenEvent("a"), TokenEvent("b"), DoneEvent()]

    async def test_stops_reading_after_done_marker(self):
        consumed = []

        async def chunks():
            for chunk in (_frame("a"), b"data: [DONE]\n\n", _frame("never")):
                consumed.append(chunk)
                yield chunk

        events = [e async for e in iter_events(chunks())]
        assert events == [TokenEvent("a"), DoneEvent()]
        assert len(consumed) == 2
