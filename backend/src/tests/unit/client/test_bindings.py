"""
Unit tests for the client reactive binding layer.
"""

import pytest

from unblocked.client.bindings import Atom, AtomListener, ClientBindings, ClientPlugin
from unblocked.options import UnblockedOptions
from unblocked.plugins.base import Plugin
from unblocked.plugins.host import compose


def prefix(value):
    return lambda path: path.startswith(value)


@pytest.fixture
def bindings():
    sharing = ClientPlugin(
        id="sharing",
        atoms={"$share_signal": Atom(False)},
        atom_listeners=[
            AtomListener(matcher=prefix("/share"), signal="$share_signal"),
            AtomListener(matcher=prefix("/share/chat"), signal="$chat_signal"),
        ],
        path_methods={"/share/chat": "post"},
    )
    audit = ClientPlugin(
        id="audit",
        atom_listeners=[
            AtomListener(matcher=prefix("/share"), signal="$share_signal"),
            AtomListener(matcher=prefix("/"), signal="$audit_signal"),
        ],
    )
    return ClientBindings([sharing, audit])


class TestOnEndpointSuccess:
    def test_all_matching_listeners_fire(self, bindings):
        signals = bindings.on_endpoint_success("/share/chat/1")

        assert signals == ["$share_signal", "$chat_signal", "$audit_signal"]

    def test_only_matching_listeners(self, bindings):
        assert bindings.on_endpoint_success("/document") == ["$audit_signal"]

    def test_no_listeners(self):
        assert ClientBindings().on_endpoint_success("/chat") == []

    def test_lookup_has_no_side_effects(self, bindings):
        before = {name: atom.get() for name, atom in bindings.atoms.items()}

        bindings.on_endpoint_success("/share/chat/1")

        assert {name: atom.get() for name, atom in bindings.atoms.items()} == before


class TestDispatch:
    def test_dispatch_toggles_known_signals(self, bindings):
        seen = []
        unsubscribe = bindings.listen("$chat_signal", lambda value, old: seen.append((value, old)))

        signals = bindings.dispatch("/share/chat/1")
        unsubscribe()
        bindings.dispatch("/share/chat/2")

        assert "$audit_signal" in signals
        assert seen == [(True, False)]
        assert bindings.atoms["$share_signal"].get() is False

    def test_unknown_signal(self, bindings):
        assert bindings.notify("$missing") is False
        assert bindings.listen("$missing", lambda value, old: None) is None


class TestMethodFor:
    def test_declared_methods(self, bindings):
        assert bindings.method_for("/chat") == "POST"
        assert bindings.method_for("/share/chat") == "POST"

    def test_defaults_to_get(self, bindings):
        assert bindings.method_for("/unknown") == "GET"


class TestActions:
    def test_actions_are_merged_in_order(self):
        first = ClientPlugin(id="a", get_actions=lambda fetch: {"share": fetch, "ping": "a"})
        second = ClientPlugin(id="b", get_actions=lambda fetch: {"ping": "b"})

        actions = ClientBindings([first, second]).actions("fetch")

        assert actions == {"share": "fetch", "ping": "b"}


class TestComposition:
    def test_client_plugins_come_from_server_plugins(self, test_settings):
        client = ClientPlugin(
            id="sharing", atom_listeners=[AtomListener(matcher=prefix("/share"), signal="$chat_signal")]
        )
        context = compose(
            UnblockedOptions(plugins=[Plugin(id="sharing", client=client), Plugin(id="plain")]),
            settings=test_settings,
        )

        assert context.client.plugins == [client]
        assert context.client.on_endpoint_success("/share") == ["$chat_signal"]
