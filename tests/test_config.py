import pytest
import yaml

from agcal_core.config import StashConfig


def test_defaults():
    c = StashConfig()
    assert c.file_selector == "UserFile1"
    assert c.compression_level == 9
    assert c.compress is True
    assert c.default_slot == 0


def test_from_yaml_keeps_unknown_keys(tmp_path):
    p = tmp_path / "agcal.yaml"
    p.write_text(
        "file_selector: UserFile2\n"
        "compression_level: 6\n"
        "compress: false\n"
        "default_slot: 2\n"
        "progress: false\n"
        "camera_serial: '12345'\n"
    )
    c = StashConfig.from_yaml(p)
    assert c.file_selector == "UserFile2"
    assert c.compression_level == 6
    assert c.compress is False
    assert c.default_slot == 2
    assert c.progress is False
    assert c.extra == {"camera_serial": "12345"}


def test_empty_yaml_is_defaults(tmp_path):
    p = tmp_path / "empty.yaml"
    p.write_text("")
    assert StashConfig.from_yaml(p) == StashConfig()


@pytest.mark.parametrize(
    "text",
    ["compression_level: 12\n", "default_slot: 3\n", "file_selector: ''\n", "- a\n- b\n"],
)
def test_invalid_values_are_rejected(tmp_path, text):
    p = tmp_path / "bad.yaml"
    p.write_text(text)
    with pytest.raises(ValueError):
        StashConfig.from_yaml(p)


def test_malformed_yaml(tmp_path):
    p = tmp_path / "broken.yaml"
    p.write_text("a: [1, 2\n")
    with pytest.raises(yaml.YAMLError):
        StashConfig.from_yaml(p)
