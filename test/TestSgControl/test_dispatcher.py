"""
Unit tests for the command dispatcher
"""
import sys
import threading
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src" / "SgControlGUI"))
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import sg_commands
from sg_dispatcher import CommandDispatcher, Direction, format_transcript_line
from sg_reader import ResponseStatus
from sg_transport import SerialTransport
from fake_transport import FakeTransport
from sg_emulator import SignalGeneratorEmulator


def make_dispatcher(transport, **kwargs):
    transcript = []
    dispatcher = CommandDispatcher(transport, log_sink=lambda d, t: transcript.append((d, t)),
                                   poll_interval=0.01, **kwargs)
    return dispatcher, transcript


class TestExchange:

    def test_single_line_exchange(self):
        transport = FakeTransport(responder=SignalGeneratorEmulator().handle_line)
        dispatcher, transcript = make_dispatcher(transport)

        response = dispatcher.send_single_line(sg_commands.get_identity())

        assert transport.written == [b"$IDN,0\r\n"]
        assert response.status is ResponseStatus.COMPLETE
        assert response.text == "$IDN,0,SG-EMULATOR,0001\r\n"
        assert transcript == [
            (Direction.OUTBOUND, "$IDN,0"),
            (Direction.INBOUND, "$IDN,0,SG-EMULATOR,0001\r\n"),
        ]

    def test_multi_line_exchange_in_small_chunks(self):
        transport = FakeTransport(responder=SignalGeneratorEmulator().handle_line, chunk_size=3)
        dispatcher, _ = make_dispatcher(transport)

        response = dispatcher.send_multi_line(sg_commands.get_status(verbose=True))

        assert response.status is ResponseStatus.COMPLETE
        assert response.text == "$ST,0,0x0\r\nNo errors\r\nOK\r\n"

    def test_send_picks_terminator_from_kind(self):
        transport = FakeTransport([b"$ST,0,0x0\r\n", b"No errors\r\n", b"OK\r\n"])
        dispatcher, _ = make_dispatcher(transport)

        response = dispatcher.send(sg_commands.get_status(verbose=True))

        assert response.text.endswith("OK\r\n")

    def test_raw_text_command(self):
        transport = FakeTransport(responder=SignalGeneratorEmulator().handle_line)
        dispatcher, _ = make_dispatcher(transport)

        response = dispatcher.send_single_line("$FCG,0")

        assert transport.written == [b"$FCG,0\r\n"]
        assert response.text == "$FCG,0,2450.00\r\n"

    def test_device_error_is_reported_as_status(self):
        transport = FakeTransport(responder=SignalGeneratorEmulator().handle_line)
        dispatcher, transcript = make_dispatcher(transport)

        response = dispatcher.send(sg_commands.set_frequency("9999"))

        assert response.status is ResponseStatus.ERROR_SENTINEL
        assert response.text == "$FCS,0,ERR\r\n"
        assert transcript[-1] == (Direction.INBOUND, "$FCS,0,ERR\r\n")

    def test_sentinel_is_a_plain_substring_match(self):
        # "$ERRC,0,OK" carries the sentinel text, so it ends as ERROR_SENTINEL
        transport = FakeTransport(responder=SignalGeneratorEmulator().handle_line)
        dispatcher, _ = make_dispatcher(transport)

        response = dispatcher.send(sg_commands.clear_errors())

        assert response.status is ResponseStatus.ERROR_SENTINEL
        assert response.text == "$ERRC,0,OK\r\n"


class TestSoftFailures:

    def test_closed_connection_returns_empty_response(self):
        transport = FakeTransport([b"$IDN,0,x\r\n"])
        transport.close()
        dispatcher, transcript = make_dispatcher(transport)

        response = dispatcher.send_single_line(sg_commands.get_identity())

        assert response.is_empty
        assert response.status is ResponseStatus.COMPLETE
        assert transport.written == []
        assert transport.reads == 0
        assert transcript == []

    def test_unacknowledged_write_skips_outbound_log(self):
        transport = FakeTransport([b"$IDN,0,x\r\n"], write_ok=False)
        dispatcher, transcript = make_dispatcher(transport)

        response = dispatcher.send_single_line(sg_commands.get_identity())

        assert response.text == "$IDN,0,x\r\n"
        assert transcript == [(Direction.INBOUND, "$IDN,0,x\r\n")]

    def test_timeout(self):
        transport = FakeTransport()
        dispatcher, transcript = make_dispatcher(transport, single_line_timeout=0.05)

        response = dispatcher.send_single_line(sg_commands.get_identity())

        assert response.status is ResponseStatus.TIMED_OUT
        assert transcript[-1] == (Direction.INBOUND, "")

    def test_cancel(self):
        cancel = threading.Event()
        cancel.set()
        dispatcher, _ = make_dispatcher(FakeTransport())

        response = dispatcher.send_multi_line(sg_commands.get_status(verbose=True), cancel)

        assert response.status is ResponseStatus.CANCELLED


class TestExclusiveExchanges:

    def test_sequential_exchanges_do_not_mix(self):
        transport = FakeTransport([b"$IDN,0,A\r\n", b"$VER,0,B\r\n"])
        dispatcher, _ = make_dispatcher(transport)

        first = dispatcher.send_single_line(sg_commands.get_identity())
        second = dispatcher.send_single_line(sg_commands.get_version())

        assert first.text == "$IDN,0,A\r\n"
        assert second.text == "$VER,0,B\r\n"

    def test_concurrent_callers_are_serialized(self):
        transport = FakeTransport(responder=SignalGeneratorEmulator().handle_line, chunk_size=2)
        dispatcher, _ = make_dispatcher(transport)
        results = {}

        def worker(i):
            command = sg_commands.get_identity() if i % 2 else sg_commands.get_version()
            results[i] = (command.mnemonic, dispatcher.send(command))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert len(results) == 8
        for mnemonic, response in results.values():
            assert response.status is ResponseStatus.COMPLETE
            assert response.text.startswith(f"${mnemonic},0,")
            assert response.text.count("\r\n") == 1
        assert not dispatcher.busy


class TestLoopbackPort:

    def test_exchange_over_real_transport(self):
        # loop:// echoes the command back, which is a complete single line
        transport = SerialTransport("loop://")
        transport.open()
        try:
            dispatcher, transcript = make_dispatcher(transport)
            response = dispatcher.send_single_line(sg_commands.get_frequency())
        finally:
            transport.close()

        assert response.status is ResponseStatus.COMPLETE
        assert response.text == "$FCG,0\r\n"
        assert transcript[0] == (Direction.OUTBOUND, "$FCG,0")


def wait_until_busy(dispatcher, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not dispatcher.busy:
        assert time.monotonic() < deadline, "exchange never started"
        time.sleep(0.001)


class TestClose:

    def test_close_while_exchange_in_flight(self):
        # loop:// echoes "$IDN,0\r\n" but never the OK line, so the exchange waits
        transport = SerialTransport("loop://")
        transport.open()
        dispatcher, _ = make_dispatcher(transport, multi_line_timeout=None)
        results = {}

        def worker():
            results["response"] = dispatcher.send_multi_line(sg_commands.get_identity())

        thread = threading.Thread(target=worker)
        thread.start()
        wait_until_busy(dispatcher)

        dispatcher.close()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert results["response"].status is ResponseStatus.CANCELLED
        assert not transport.is_open
        assert not dispatcher.busy

    def test_send_after_close(self):
        transport = FakeTransport(responder=SignalGeneratorEmulator().handle_line)
        dispatcher, _ = make_dispatcher(transport)
        dispatcher.close()

        response = dispatcher.send_single_line(sg_commands.get_identity())
        assert response.is_empty
        assert response.status is ResponseStatus.COMPLETE
        assert transport.written == []

    def test_reopen_after_close(self):
        transport = FakeTransport(responder=SignalGeneratorEmulator().handle_line)
        dispatcher, _ = make_dispatcher(transport)
        dispatcher.close()
        transport.open()

        response = dispatcher.send_single_line(sg_commands.get_identity())
        assert response.status is ResponseStatus.COMPLETE
        assert response.text == "$IDN,0,SG-EMULATOR,0001\r\n"


class TestTranscriptFormatting:

    def test_outbound(self):
        assert format_transcript_line(Direction.OUTBOUND, "$IDN,0") == ">\t$IDN,0"

    def test_single_line_inbound(self):
        assert format_transcript_line(Direction.INBOUND, "$IDN,0,SG\r\n") == "<\t$IDN,0,SG"

    def test_multi_line_inbound_marks_every_line(self):
        text = "$SWPD,0,2400,10,5\r\n$SWPD,0,2410,10,6\r\nOK\r\n"
        assert format_transcript_line(Direction.INBOUND, text) == (
            "<\t$SWPD,0,2400,10,5\n<\t$SWPD,0,2410,10,6\n<\tOK")

    def test_empty_inbound(self):
        assert format_transcript_line(Direction.INBOUND, "") == "<\t"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
