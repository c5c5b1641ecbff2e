from __future__ import annotations

from pathlib import Path

from instrument_gateway.app.cli import EXIT_CONFIG_ERROR, build_parser, main


DEVICE_FILE = """
[box1]
devfile = "/dev/ttyUSB0"
baud = 9600

  [[box1.swts]]
  id = "pump"
  cmdget = "p"
  cmdset = "P"
  cmdclr = "q"
"""


def test_parser_defaults() -> None:
    args = build_parser().parse_args([])

    assert args.bind == "127.0.0.1:5500"
    assert args.conf is None
    assert args.check is False


def test_check_accepts_valid_file(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(DEVICE_FILE, encoding="utf-8")

    assert main(["--conf", str(path), "--check"]) == 0


def test_invalid_file_exits_before_serving(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(DEVICE_FILE.replace("baud = 9600\n", ""), encoding="utf-8")

    assert main(["--conf", str(path)]) == EXIT_CONFIG_ERROR
    assert main(["--conf", str(tmp_path / "missing.toml"), "--check"]) == EXIT_CONFIG_ERROR


def test_bad_bind_address(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(DEVICE_FILE, encoding="utf-8")

    assert main(["--bind", "nowhere", "--conf", str(path)]) == EXIT_CONFIG_ERROR
