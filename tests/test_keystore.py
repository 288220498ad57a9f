from keyrelay.core.keystore import AdminKeyStore, KeyPolicy


def test_first_write_wins():
    store = AdminKeyStore()
    assert store.get() is None
    assert store.set_if_absent("K1") is True
    assert store.set_if_absent("K2") is False
    assert store.get() == "K1"


def test_none_is_never_stored():
    store = AdminKeyStore()
    assert store.set_if_absent(None) is False
    assert not store.is_set


def test_opaque_values_kept_as_is():
    jwk = {"kty": "EC", "crv": "P-256", "x": "abc", "y": "def"}
    store = AdminKeyStore()
    store.set_if_absent(jwk)
    assert store.get() == jwk


def test_clear_allows_new_key():
    store = AdminKeyStore()
    store.set_if_absent("K1")
    store.clear()
    assert store.get() is None
    assert store.set_if_absent("K2") is True
    assert store.get() == "K2"


def test_policy_values():
    assert KeyPolicy("retain") is KeyPolicy.RETAIN
    assert KeyPolicy("clear_on_admin_exit") is KeyPolicy.CLEAR_ON_ADMIN_EXIT
