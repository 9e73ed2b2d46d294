"""Tests for the local state store and rule identity adoption."""

import json
import tempfile

import pytest

from gwsync.errors import ConfigurationError
from gwsync.models import PolicyView, RuleAction, RuleSpec, Tag
from gwsync.state import StateStore, adopt_rule_ids

POLICY_PATH = "/infra/domains/default/gateway-policies/gp1"


def _view() -> PolicyView:
    return PolicyView(
        id="gp1",
        domain="default",
        path=POLICY_PATH,
        description="Edge policy",
        revision=9,
        tags=[Tag("env", "prod")],
        rules=[
            RuleSpec(id="r1", display_name="allow-dns", action=RuleAction.ALLOW, sequence_number=1),
        ],
        default_rules=[
            RuleSpec(id="d1", display_name="gw1", scope=("/infra/tier-0s/gw1",), is_default=True),
        ],
        overridden_default_ids={"d1"},
    )


def test_save_and_load():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = StateStore(tmpdir)
        store.save(_view())

        loaded = store.load(POLICY_PATH)
        assert loaded.revision == 9
        assert loaded.tags == [Tag("env", "prod")]
        assert loaded.rule_ids == {"r1"}
        assert loaded.default_rule_ids == {"d1"}
        assert loaded.rules[0].sequence_number == 1
        assert loaded.default_rules[0].is_default
        assert loaded.overridden_default_ids == {"d1"}


def test_load_unknown_path():
    with tempfile.TemporaryDirectory() as tmpdir:
        assert StateStore(tmpdir).load(POLICY_PATH) is None


def test_forget():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = StateStore(tmpdir)
        store.save(_view())

        assert store.forget(POLICY_PATH)
        assert store.load(POLICY_PATH) is None
        assert not store.forget(POLICY_PATH)


def test_state_without_overridden_ids_reverts_nothing():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = StateStore(tmpdir)
        store.save(_view())
        data = json.loads(store.store_file.read_text())
        del data[POLICY_PATH]["overridden_default_ids"]
        store.store_file.write_text(json.dumps(data))

        assert store.load(POLICY_PATH).overridden_default_ids == set()


def test_corrupt_state_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = StateStore(tmpdir)
        store.store_dir.mkdir()
        store.store_file.write_text("{not json")

        with pytest.raises(ConfigurationError) as exc:
            store.load(POLICY_PATH)
        assert "state.json" in str(exc.value)


@pytest.mark.parametrize(
    "entry",
    [
        {"domain": "default"},
        {"id": "gp1", "domain": "default", "rules": [{"id": "r1", "action": "PERMIT"}]},
        {"id": "gp1", "domain": "default", "rules": ["r1"]},
    ],
)
def test_corrupt_state_entry(entry):
    with tempfile.TemporaryDirectory() as tmpdir:
        store = StateStore(tmpdir)
        store.store_dir.mkdir()
        store.store_file.write_text(json.dumps({POLICY_PATH: entry}))

        with pytest.raises(ConfigurationError):
            store.load(POLICY_PATH)


# --- Identity adoption ---


def test_adopts_unique_same_named_rule():
    declared = [RuleSpec(display_name="allow-dns"), RuleSpec(display_name="new-rule")]
    adopted = adopt_rule_ids(declared, _view())
    assert [r.id for r in adopted] == ["r1", ""]


def test_explicit_ids_are_kept_and_not_stolen():
    declared = [RuleSpec(display_name="allow-dns"), RuleSpec(id="r1", display_name="renamed")]
    adopted = adopt_rule_ids(declared, _view())
    assert [r.id for r in adopted] == ["", "r1"]


def test_ambiguous_names_not_adopted():
    previous = _view()
    previous.rules.append(RuleSpec(id="r2", display_name="allow-dns"))
    adopted = adopt_rule_ids([RuleSpec(display_name="allow-dns")], previous)
    assert adopted[0].id == ""


def test_no_previous_view():
    declared = [RuleSpec(display_name="allow-dns")]
    assert adopt_rule_ids(declared, None) == declared
