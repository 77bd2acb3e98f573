import logging
import sys
from dataclasses import fields
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(REPO_ROOT))

import wallet_identities as identities  # noqa: E402
from eth_account import Account  # noqa: E402


KEY_A = "0x" + "11" * 32
KEY_B = "0x" + "22" * 32
KEY_C = "0x" + "33" * 32


def _identity(identity_id, role="seller", provider="metamask", key=KEY_A):
    return identities.Identity(
        id=identity_id,
        name=identity_id.title(),
        role=role,
        provider=provider,
        address=Account.from_key(key).address,
        private_key=key,
    )


# ---------------------------------------------------------------------------
# Credential validation
# ---------------------------------------------------------------------------


def test_validate_secret_accepts_well_formed_key():
    assert identities.validate_secret(f"  {KEY_A}\n") == KEY_A


@pytest.mark.parametrize(
    "secret",
    [
        "0x",
        "0x" + "0" * 64,
        "11" * 32,
        "0x" + "11" * 31,
        "0x" + "zz" * 32,
    ],
)
def test_validate_secret_rejects_placeholders_and_malformed(secret):
    with pytest.raises(identities.InvalidCredentialError):
        identities.validate_secret(secret)


def test_derive_address_matches_eth_account():
    assert identities.derive_address(KEY_A) == Account.from_key(KEY_A).address


def test_identity_repr_hides_private_key():
    identity = _identity("catmm_seller")
    assert KEY_A not in repr(identity)
    assert "private_key" not in identity.public_view()


def test_identity_carries_only_wallet_fields():
    identity = _identity("cm_buyer", role="buyer", provider="crossmint")
    assert [f.name for f in fields(identity)] == ["id", "name", "role", "provider", "address", "private_key"]
    assert not hasattr(identity, "description")


# ---------------------------------------------------------------------------
# Loading from the environment
# ---------------------------------------------------------------------------


def test_load_identities_preserves_slot_order():
    env = {
        "WALLET_PRIVATE_KEY": KEY_C,
        "CM_SELLER_WALLET_PRIVATE_KEY": KEY_B,
        "CAT_MM_SELLER_WALLET_PRIVATE_KEY": KEY_A,
    }
    loaded = identities.load_identities(env)

    assert [i.id for i in loaded] == ["catmm_seller", "cm_seller", "legacy_main"]
    assert loaded[0].address == Account.from_key(KEY_A).address
    assert loaded[1].provider == "crossmint"
    assert loaded[2].role == "legacy"


def test_load_identities_skips_invalid_without_logging_secret(caplog):
    bad = "0x" + "ab" * 31
    env = {
        "CAT_MM_SELLER_WALLET_PRIVATE_KEY": bad,
        "CAT_MM_BUYER_WALLET_PRIVATE_KEY": KEY_B,
    }
    with caplog.at_level(logging.INFO, logger="wallet_identities"):
        loaded = identities.load_identities(env)

    assert [i.id for i in loaded] == ["catmm_buyer"]
    assert "MetaMask Seller" in caplog.text
    assert bad not in caplog.text
    assert KEY_B not in caplog.text


def test_load_identities_skips_placeholder():
    env = {"CM_BUYER_WALLET_PRIVATE_KEY": "0x" + "0" * 64}
    assert identities.load_identities(env) == []


def test_load_identities_empty_warns_with_env_names(caplog):
    with caplog.at_level(logging.WARNING, logger="wallet_identities"):
        loaded = identities.load_identities({})

    assert loaded == []
    assert "CAT_MM_SELLER_WALLET_PRIVATE_KEY" in caplog.text
    assert "WALLET_PRIVATE_KEY" in caplog.text


def test_wallet_slots_cover_every_role_and_provider():
    ids = [slot.id for slot in identities.WALLET_SLOTS]
    assert ids[0] == "catmm_seller"
    assert ids[-1] == "legacy_main"
    assert len(ids) == len(set(ids)) == 8
    assert {slot.provider for slot in identities.WALLET_SLOTS} == {
        "metamask",
        "crossmint",
        "civic",
        "legacy",
    }


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def test_registry_lookups():
    registry = identities.IdentityRegistry(
        [
            _identity("catmm_seller", "seller", "metamask", KEY_A),
            _identity("cm_seller", "seller", "crossmint", KEY_B),
            _identity("cm_buyer", "buyer", "crossmint", KEY_C),
        ]
    )

    assert len(registry) == 3
    assert "cm_buyer" in registry
    assert "cvc_buyer" not in registry
    assert registry.get("cm_seller").provider == "crossmint"
    assert registry.get("missing") is None
    assert registry.get(None) is None
    assert [i.id for i in registry.list_by_role("seller")] == ["catmm_seller", "cm_seller"]
    assert [i.id for i in registry.list_by_provider("crossmint")] == ["cm_seller", "cm_buyer"]
    assert registry.find_by_role_and_provider("buyer", "crossmint").id == "cm_buyer"
    assert registry.find_by_role_and_provider("buyer", "metamask") is None
    assert registry.list_by_role("financier") == []


def test_registry_first_duplicate_wins():
    first = _identity("catmm_seller", key=KEY_A)
    second = _identity("catmm_seller", key=KEY_B)
    registry = identities.IdentityRegistry([first, second])

    assert len(registry) == 1
    assert registry.get("catmm_seller").address == first.address


def test_registry_from_env_and_summary():
    registry = identities.IdentityRegistry.from_env({"CVC_BUYER_WALLET_PRIVATE_KEY": KEY_A})
    summary = registry.summary()

    assert summary == [
        {
            "id": "cvc_buyer",
            "name": "Civic Buyer",
            "role": "buyer",
            "provider": "civic",
            "address": Account.from_key(KEY_A).address,
        }
    ]


def test_identity_not_found_error_carries_context():
    err = identities.IdentityNotFoundError("financier", [{"id": "cm_buyer"}])
    assert str(err) == "No financier wallet found"
    assert err.role == "financier"
    assert err.available == [{"id": "cm_buyer"}]
    assert isinstance(err, identities.WalletError)
