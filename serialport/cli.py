#!/usr/bin/env python3

"""CLI tool to list serial ports and inspect their settings"""

import argparse
import logging
import msgspec
import ok_logging_setup
import re

import serialport

ok_logging_setup.skip_traceback_for(serialport.SerialPortError)


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(prog="serialport")
    subparsers = parser.add_subparsers(title="actions", dest="command")
    list_parser = subparsers.add_parser("list", help="List serial ports")
    list_style_group = list_parser.add_mutually_exclusive_group()
    list_style_group.add_argument(
        "--name", "-n", action="store_true", help="print device path only"
    )
    list_style_group.add_argument(
        "--verbose", "-v", action="store_true", help="print every field"
    )

    info_parser = subparsers.add_parser("info", help="Show port settings")
    info_parser.add_argument("path", help="serial port device")
    info_parser.add_argument(
        "--baud", "-b", default=9600, type=int, help="baud rate to open with"
    )

    args = parser.parse_args(argv)
    if not args.command:
        args = parser.parse_args(["list"])

    level = "warning" if args.command == "list" and args.name else "info"
    ok_logging_setup.install({"OK_LOGGING_LEVEL": level})

    if args.command == "list":
        found = serialport.available_ports()
        if not found:
            ok_logging_setup.exit("❌ No serial ports found")

        num = len(found)
        plural = "" if num == 1 else "s"
        logging.info("🔌 %d serial port%s found", num, plural)
        for info in found:
            if args.name:
                print(info.port_name)
            elif args.verbose:
                print(format_detail(info), end="\n\n")
            else:
                print(format_line(info))

    if args.command == "info":
        with serialport.new(args.path, args.baud).open() as port:
            print(format_port(port))


def format_line(info: serialport.SerialPortInfo) -> str:
    port_type = info.port_type
    words = [info.port_name, type_label(port_type)]
    if isinstance(port_type, serialport.UsbPortInfo):
        words.append(f"{port_type.vid:04x}:{port_type.pid:04x}")
        for text in (port_type.manufacturer, port_type.product):
            if text:
                words.append(format_value(text))
        if port_type.serial_number:
            words.append(f"serial={format_value(port_type.serial_number)}")
    return " ".join(words)


def format_detail(info: serialport.SerialPortInfo) -> str:
    label = f"Port: {info.port_name} ({type_label(info.port_type)})"
    fields = msgspec.structs.asdict(info.port_type)
    return label + "".join(
        f"\n  {k}={format_value(v)}" for k, v in fields.items() if v is not None
    )


def format_port(port: serialport.SerialPort) -> str:
    lines = [f"Port: {port.name()}"]
    for label, getter in (
        ("baud_rate", port.baud_rate),
        ("data_bits", port.data_bits),
        ("parity", port.parity),
        ("stop_bits", port.stop_bits),
        ("flow_control", port.flow_control),
        ("timeout", port.timeout),
        ("CTS", port.read_clear_to_send),
        ("DSR", port.read_data_set_ready),
        ("RI", port.read_ring_indicator),
        ("CD", port.read_carrier_detect),
    ):
        try:
            lines.append(f"  {label}={getter()!s}")
        except serialport.SerialPortError as ex:
            lines.append(f"  {label}: {ex.description}")
    return "\n".join(lines)


def type_label(port_type: serialport.SerialPortType) -> str:
    return type(port_type).__struct_config__.tag


def format_value(v) -> str:
    if isinstance(v, int):
        return f"0x{v:04x}"
    v = str(v)
    return repr(v) if re.search(r"""[\s!"'*=?\\]""", v) else v


if __name__ == "__main__":
    main()
