from pathlib import Path
import textwrap

import pytest

from flowprobe.errors import CatalogError
from flowprobe.locators.catalog import DEFAULT_TARGETS, Catalog, load_catalog
from flowprobe.locators.descriptor import Strategy


def write(tmp_path: Path, body: str) -> Path:
    p = tmp_path / "catalog.yaml"
    p.write_text(textwrap.dedent(body), encoding="utf-8")
    return p


def test_defaults_cover_every_scenario_target():
    catalog = Catalog()
    for name in ("qr_code", "login_ready", "search_box", "contact_result", "message_box",
                 "proceed_button", "name_error_indicators", "attach_button", "file_input",
                 "send_button", "chat_with_agent", "agent_ack"):
        assert name in catalog
    assert len(catalog) == len(DEFAULT_TARGETS)


def test_get_binds_placeholders():
    ls = Catalog().get("contact_result", contact="+60 12")

    assert 'span[title*="+60 12"]' in [d.value for d in ls.descriptors]
    assert ls.placeholders() == set()
    # defaults are untouched
    assert Catalog().get("contact_result").placeholders() == {"contact"}


def test_unknown_target():
    with pytest.raises(CatalogError):
        Catalog().get("nope")


def test_yaml_overrides_by_name(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("COMPOSE_SELECTOR", "#compose")
    p = write(tmp_path, """
        version: "1"
        targets:
          message_box:
            description: Compose box
            probe_timeout_ms: 2500
            descriptors:
              - "${COMPOSE_SELECTOR}"
              - {strategy: role, value: "textbox|Type a message"}
          extra_banner:
            state: attached
            descriptors:
              - {strategy: text, value: "Promo ended", exact: true}
        """)

    catalog = load_catalog(p)

    box = catalog.get("message_box")
    assert [d.describe() for d in box.descriptors] == ["css:#compose", "role:textbox|Type a message"]
    assert box.probe_timeout_ms == 2500
    banner = catalog.get("extra_banner")
    assert banner.state == "attached"
    assert banner.descriptors[0].strategy == Strategy.text and banner.descriptors[0].exact
    # untouched defaults survive
    assert catalog.get("send_button") == DEFAULT_TARGETS["send_button"]


def test_invalid_yaml_lists_errors(tmp_path: Path):
    p = write(tmp_path, """
        targets:
          message_box:
            probe_timeout_ms: 0
            descriptors: []
        """)

    with pytest.raises(CatalogError) as ei:
        load_catalog(p)

    msg = str(ei.value)
    assert "Invalid catalog" in msg
    assert "targets.message_box" in msg


def test_bad_state_is_rejected(tmp_path: Path):
    p = write(tmp_path, """
        targets:
          message_box:
            state: hidden
            descriptors: ["#compose"]
        """)

    with pytest.raises(CatalogError):
        load_catalog(p)


def test_missing_and_unparseable_files(tmp_path: Path):
    with pytest.raises(CatalogError):
        load_catalog(tmp_path / "missing.yaml")

    p = tmp_path / "broken.yaml"
    p.write_text("targets: [unclosed", encoding="utf-8")
    with pytest.raises(CatalogError):
        load_catalog(p)
