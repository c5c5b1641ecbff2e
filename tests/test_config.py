from __future__ import annotations

from pathlib import Path

import pytest

from instrument_gateway.app.config import ConfigManager, Settings
from instrument_gateway.app.core.gateway_exceptions import ConfigurationError, ItemNotFoundError
from instrument_gateway.app.models.device_config import ItemKind


VALID_TOML = """
[box1]
devfile = "/dev/ttyUSB0"
baud = 9600

  [[box1.ADCs]]
  id = "battery"
  vref = 5.0
  cmdget = "a"
  expr = "adcval * (vref / 256)"

  [[box1.tmpts]]
  id = "room"
  cmdlsb = "l"
  cmdmsb = "m"

  [[box1.swts]]
  id = "pump"
  cmdget = "p"
  cmdset = "P"
  cmdclr = "q"

[box2]
devfile = "/dev/ttyUSB1"
baud = 19200
read_timeout_s = 2.0
"""


def _load(tmp_path: Path, name: str, content: str) -> dict:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return ConfigManager(Settings(device_config_path=str(path), read_timeout_s=5.0)).load_devices()


def test_load_toml_devices(tmp_path: Path) -> None:
    devices = _load(tmp_path, "config.toml", VALID_TOML)

    box1 = devices["box1"]
    assert box1.devfile == "/dev/ttyUSB0"
    assert box1.baud == 9600
    assert box1.read_timeout_s == 5.0
    assert box1.adcs[0].cmdget == b"a"
    assert box1.adcs[0].expression.evaluate(adcval=255, vref=box1.adcs[0].vref) == pytest.approx(4.98, abs=0.005)
    assert box1.tmpts[0].cmdlsb == b"l"
    assert box1.swts[0].cmdclr == b"q"
    assert [kind for kind, _item in box1.iter_items()] == [ItemKind.ANALOG, ItemKind.TEMPERATURE, ItemKind.SWITCH]
    assert box1.get_item(ItemKind.SWITCH, "pump").device_id == "box1"
    assert devices["box2"].read_timeout_s == 2.0
    assert devices["box2"].item_count == 0


def test_load_yaml_with_devices_key(tmp_path: Path) -> None:
    content = """
devices:
  box1:
    devfile: /dev/ttyS0
    baud: 4800
    adcs:
      - id: level
        cmdget: "x"
        expr: adcval
"""
    devices = _load(tmp_path, "devices.yaml", content)

    assert devices["box1"].adcs[0].item_id == "level"
    assert devices["box1"].adcs[0].vref == 0.0


@pytest.mark.parametrize(
    "table, fragment",
    [
        ('devfile = "/dev/x"\n', "baud"),
        ('baud = 9600\n', "devfile"),
        ('devfile = ""\nbaud = 9600\n', "devfile"),
        ('devfile = "/dev/x"\nbaud = 0\n', "baud"),
        ('devfile = "/dev/x"\nbaud = 9600\n[[dev.swts]]\nid = "s"\ncmdget = "g"\ncmdset = "s"\n', "cmdclr"),
        ('devfile = "/dev/x"\nbaud = 9600\n[[dev.tmpts]]\nid = ""\ncmdlsb = "l"\ncmdmsb = "m"\n', "id"),
        ('devfile = "/dev/x"\nbaud = 9600\n[[dev.ADCs]]\nid = "a"\ncmdget = ""\nexpr = "adcval"\n', "cmdget"),
    ],
)
def test_missing_or_empty_fields_are_fatal(tmp_path: Path, table: str, fragment: str) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        _load(tmp_path, "config.toml", "[dev]\n" + table)

    assert "<dev>" in str(excinfo.value)
    assert fragment in str(excinfo.value)
    assert excinfo.value.device_id == "dev"


def test_one_bad_device_rejects_the_whole_file(tmp_path: Path) -> None:
    manager = ConfigManager(Settings(device_config_path=str(tmp_path / "config.toml")))
    (tmp_path / "config.toml").write_text(VALID_TOML + '\n[broken]\ndevfile = "/dev/y"\n', encoding="utf-8")

    with pytest.raises(ConfigurationError):
        manager.load_devices()

    assert manager.devices == {}


def test_bad_expression_is_fatal(tmp_path: Path) -> None:
    content = '[dev]\ndevfile = "/dev/x"\nbaud = 9600\n[[dev.ADCs]]\nid = "a"\ncmdget = "g"\nexpr = "open(adcval)"\n'

    with pytest.raises(ConfigurationError, match="Expression of adc <a>"):
        _load(tmp_path, "config.toml", content)


def test_duplicate_item_ids_are_fatal(tmp_path: Path) -> None:
    content = (
        '[dev]\ndevfile = "/dev/x"\nbaud = 9600\n'
        '[[dev.swts]]\nid = "s"\ncmdget = "g"\ncmdset = "s"\ncmdclr = "c"\n'
        '[[dev.swts]]\nid = "s"\ncmdget = "h"\ncmdset = "t"\ncmdclr = "d"\n'
    )

    with pytest.raises(ConfigurationError, match="duplicate item id 's'"):
        _load(tmp_path, "config.toml", content)


def test_empty_and_unreadable_files(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="No devices"):
        _load(tmp_path, "config.toml", "")
    with pytest.raises(ConfigurationError, match="Cannot parse"):
        _load(tmp_path, "broken.toml", "[dev\n")
    with pytest.raises(ConfigurationError, match="Unsupported"):
        _load(tmp_path, "config.json", "{}")
    with pytest.raises(ConfigurationError, match="not found"):
        ConfigManager(Settings()).load_devices(str(tmp_path / "missing.toml"))


def test_get_device(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(VALID_TOML, encoding="utf-8")
    manager = ConfigManager(Settings(device_config_path=str(path)))
    manager.load_devices()

    assert manager.get_device("box2").baud == 19200
    assert manager.list_devices() == ["box1", "box2"]
    with pytest.raises(ItemNotFoundError):
        manager.get_device("box3")


def test_settings_timings_and_bind() -> None:
    settings = Settings(error_pause_s=1.0, fault_timeout_s=2.0, max_errors=5)

    timings = settings.poller_timings()
    assert (timings.error_pause_s, timings.fault_timeout_s, timings.max_errors) == (1.0, 2.0, 5)
    assert Settings.parse_bind("127.0.0.1:5500") == ("127.0.0.1", 5500)
    assert Settings.parse_bind(":8080") == ("0.0.0.0", 8080)
    assert Settings.parse_bind("[::1]:9000") == ("::1", 9000)
    for bad in ("localhost", "host:port", "host:70000"):
        with pytest.raises(ValueError):
            Settings.parse_bind(bad)
