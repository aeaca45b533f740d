"""
Command line control for the signal generator board

Examples:
    python sg_cli.py ports
    python sg_cli.py identity
    python sg_cli.py --port /dev/ttyACM0 set-frequency 2450
    python sg_cli.py sweep 2400 2500 10 20 --notation linear
"""

import argparse
import logging
import sys

import sg_commands
from sg_devices import list_devices, select_device
from sg_dispatcher import CommandDispatcher, Direction, format_transcript_line
from sg_properties import SINGLE_LINE_TIMEOUT, MULTI_LINE_TIMEOUT
from sg_reader import ResponseStatus
from sg_sweep import PlotNotation, SweepError, run_sweep
from sg_transport import SerialTransport

SIMPLE_COMMANDS = {
    "identity": sg_commands.get_identity,
    "version": sg_commands.get_version,
    "clear-errors": sg_commands.clear_errors,
    "get-frequency": sg_commands.get_frequency,
    "get-pa-power": sg_commands.get_pa_power,
    "get-power": sg_commands.get_power_setpoint,
}


def build_parser():
    parser = argparse.ArgumentParser(description='Signal generator board control')
    parser.add_argument('--port', help='Serial device path (default: autodetect)')
    parser.add_argument('--timeout', type=float, default=None,
                        help='Overall response deadline in seconds '
                             f'(default: {SINGLE_LINE_TIMEOUT:g} single-line, '
                             f'{MULTI_LINE_TIMEOUT:g} multi-line)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    sub = parser.add_subparsers(dest='command', required=True)
    sub.add_parser('ports', help='List serial ports')
    for name in SIMPLE_COMMANDS:
        sub.add_parser(name)

    p = sub.add_parser('status')
    p.add_argument('--verbose-list', action='store_true',
                   help='Return the list of errors instead of an error code')
    p = sub.add_parser('set-frequency')
    p.add_argument('frequency', help='Frequency in MHz')
    p = sub.add_parser('set-power')
    p.add_argument('power', help='Power in dBm')
    p = sub.add_parser('dll-config')
    p.add_argument('values', nargs=6)
    p = sub.add_parser('dll')
    p.add_argument('state', choices=['on', 'off'])
    p = sub.add_parser('rf')
    p.add_argument('state', choices=['on', 'off'])
    p = sub.add_parser('raw', help='Send a raw command, e.g. "$IDN,0"')
    p.add_argument('text')
    p.add_argument('--multi-line', action='store_true')

    p = sub.add_parser('sweep', help='Run an S11 sweep')
    p.add_argument('start', help='Start frequency (MHz)')
    p.add_argument('stop', help='Stop frequency (MHz)')
    p.add_argument('step', help='Step (MHz)')
    p.add_argument('power', help='Power (dBm)')
    p.add_argument('--strict', action='store_true',
                   help='Reject the sweep if any data line is malformed')
    p.add_argument('--notation', choices=['log', 'linear'], default='log')
    return parser


def build_command(args):
    if args.command in SIMPLE_COMMANDS:
        return SIMPLE_COMMANDS[args.command]()
    if args.command == 'status':
        return sg_commands.get_status(verbose=args.verbose_list)
    if args.command == 'set-frequency':
        return sg_commands.set_frequency(args.frequency)
    if args.command == 'set-power':
        return sg_commands.set_power(args.power)
    if args.command == 'dll-config':
        return sg_commands.configure_dll(*args.values)
    if args.command == 'dll':
        return sg_commands.dll_enable(args.state == 'on')
    if args.command == 'rf':
        return sg_commands.rf_enable(args.state == 'on')
    if args.command == 'raw':
        kind = (sg_commands.CommandKind.MULTI_LINE if args.multi_line
                else sg_commands.CommandKind.SINGLE_LINE)
        return sg_commands.parse_command(args.text, kind)
    raise ValueError(f"Unknown command: {args.command}")


def resolve_port(args):
    """Port from the command line, else the first autodetected board"""
    if args.port:
        return args.port
    result = select_device()
    if not result.found:
        return None
    if result.multiple:
        print(f"Multiple signal generator boards found, using {result.selected.port_name}",
              file=sys.stderr)
    return result.selected.port_name


def print_transcript(direction: Direction, text: str):
    print(format_transcript_line(direction, text))


def print_sweep(result, notation: PlotNotation):
    print(f"{'Freq (MHz)':>12} {'Fwd (dBm)':>10} {'Rfl (dBm)':>10} {notation.value:>15}")
    for sample in result:
        value = (sample.s11_db if notation is PlotNotation.LOGARITHMIC
                 else sample.reflection_percent)
        print(f"{sample.frequency:>12.2f} {sample.forward:>10.2f} "
              f"{sample.reflected:>10.2f} {value:>15.2f}")
    if result.skipped:
        print(f"Skipped {len(result.skipped)} malformed line(s)", file=sys.stderr)


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    if args.command == 'ports':
        for device in list_devices():
            marker = '*' if device.is_signal_generator else ' '
            vid = '' if device.vendor_id is None else device.vendor_id
            pid = '' if device.product_id is None else device.product_id
            print(f"{marker} {device.port_name}\t{vid}:{pid}\t{device.description}")
        return 0

    try:
        command = None if args.command == 'sweep' else build_command(args)
    except ValueError as e:
        print(f"ERROR: Invalid parameter - {e}", file=sys.stderr)
        return 2

    port = resolve_port(args)
    if port is None:
        print("ERROR: No signal generator board auto-detected at any port.",
              file=sys.stderr)
        return 1

    transport = SerialTransport(port)
    try:
        transport.open()
    except ConnectionError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    timeouts = {}
    if args.timeout is not None:
        timeouts = dict(single_line_timeout=args.timeout, multi_line_timeout=args.timeout)
    dispatcher = CommandDispatcher(transport, log_sink=print_transcript, **timeouts)

    try:
        if args.command == 'sweep':
            notation = (PlotNotation.LINEAR if args.notation == 'linear'
                        else PlotNotation.LOGARITHMIC)
            try:
                result = run_sweep(dispatcher, args.start, args.stop, args.step,
                                   args.power, strict=args.strict)
            except ValueError as e:
                print(f"ERROR: Invalid parameter - {e}", file=sys.stderr)
                return 2
            except SweepError as e:
                print(f"ERROR: {e}", file=sys.stderr)
                return 1
            print_sweep(result, notation)
            return 0

        response = dispatcher.send(command)
        if response.status is not ResponseStatus.COMPLETE:
            print(f"ERROR: {response.status.value}", file=sys.stderr)
            return 1
        return 0
    finally:
        dispatcher.close()


if __name__ == '__main__':
    sys.exit(main())
