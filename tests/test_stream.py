"""
Unit tests for NDJSON stream encoding and consumption.
"""
import json
import logging

import pytest

from core.schema import CompleteEvent, ErrorEvent, ProgressEvent, Transaction, TransactionsEvent
from core.stream import NDJSONDecoder, StreamAccumulator, encode_event


def txn(description, chunk_date="2024-06-15"):
    return Transaction(date=chunk_date, description=description, credit=10.0)


def test_encode_event_wire_format():
    line = encode_event(ProgressEvent(message="Processing chunk 1/3 (pages 1-2)...", chunk=1, total_chunks=3))

    assert line.endswith(b"\n")
    assert json.loads(line) == {
        "type": "progress",
        "message": "Processing chunk 1/3 (pages 1-2)...",
        "chunk": 1,
        "totalChunks": 3,
    }
    assert json.loads(encode_event(CompleteEvent(warnings=["w"], bank_name="SBI"))) == {
        "type": "complete", "warnings": ["w"], "bankName": "SBI",
    }


def test_decoder_buffers_partial_lines():
    events = [
        ProgressEvent(message="start"),
        TransactionsEvent(chunk=1, data=[txn("Café ☕")]),
        CompleteEvent(),
    ]
    payload = b"".join(encode_event(event) for event in events)
    decoder = NDJSONDecoder()

    decoded = []
    # Split inside lines and inside multi-byte characters
    for start in range(0, len(payload), 7):
        decoded.extend(decoder.feed(payload[start:start + 7]))
    decoded.extend(decoder.flush())

    assert [type(event) for event in decoded] == [ProgressEvent, TransactionsEvent, CompleteEvent]
    assert decoded[1].data[0].description == "Café ☕"


def test_decoder_skips_bad_lines():
    decoder = NDJSONDecoder()

    events = decoder.feed(
        b'{"type":"progress","message":"a","chunk":0,"totalChunks":0}\n'
        b"not json at all\n"
        b'{"type":"mystery"}\n'
        b"\n"
        b'{"type":"error","message":"boom"}\n'
    )

    assert [type(event) for event in events] == [ProgressEvent, ErrorEvent]
    assert decoder.skipped_lines == 2


def test_decoder_logs_skipped_lines(caplog):
    with caplog.at_level(logging.WARNING, logger="core.stream"):
        NDJSONDecoder().feed(b"not json at all\n")

    assert "Skipping unparseable stream line" in caplog.text
    assert "not json at all" in caplog.text


def test_decoder_flush_handles_unterminated_line():
    decoder = NDJSONDecoder()
    assert decoder.feed('{"type":"complete","warnings":[],"bankName":null}') == []
    assert isinstance(decoder.flush()[0], CompleteEvent)
    assert decoder.flush() == []


def test_accumulator_tracks_progress_and_chunks():
    acc = StreamAccumulator()

    acc.apply(ProgressEvent(message="Processing chunk 2/3", chunk=2, total_chunks=3))
    acc.apply(TransactionsEvent(chunk=2, data=[txn("b1"), txn("b2")]))
    acc.apply(TransactionsEvent(chunk=1, data=[txn("a1")]))
    acc.apply(CompleteEvent(warnings=["Skipped chunk 3 (pages 5) due to errors: x"], bank_name="HDFC"))

    assert (acc.current_chunk, acc.total_chunks, acc.message) == (2, 3, "Processing chunk 2/3")
    assert [t.description for t in acc.transactions] == ["a1", "b1", "b2"]
    assert acc.transaction_count == 3
    assert acc.bank_name == "HDFC"
    assert acc.warnings == ["Skipped chunk 3 (pages 5) due to errors: x"]
    assert acc.done and acc.error is None


def test_accumulator_error():
    acc = StreamAccumulator()
    acc.apply(ErrorEvent(message="PDF file is corrupted"))
    assert acc.done
    assert acc.error == "PDF file is corrupted"


def test_accumulator_rejects_unknown_events():
    with pytest.raises(TypeError):
        StreamAccumulator().apply({"type": "progress"})
