"""
Wallet credential loading and the identity registry.

Implements:
- Role/provider wallet slots read from the environment
- Private key validation and address derivation (eth-account)
- An append-only, ordered registry of loaded wallet identities
- The error taxonomy shared by the session, tool and server modules
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from eth_account import Account

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class WalletError(Exception):
    """Base class for wallet manager errors."""


class InvalidCredentialError(WalletError):
    """A configured private key is malformed or a placeholder."""


class IdentityNotFoundError(WalletError):
    """No loaded wallet matches the requested role."""

    def __init__(self, role: str, available: list[dict[str, str]] | None = None) -> None:
        self.role = role
        self.available = available or []
        super().__init__(f"No {role} wallet found")


class NoActiveIdentityError(WalletError):
    """An operation needs an active wallet but none is selected."""


class ToolSetConstructionError(WalletError):
    """The on-chain tool set could not be built for a wallet."""


class ChainOperationError(WalletError):
    """A chain read, write or receipt wait failed."""


# ---------------------------------------------------------------------------
# Wallet slots
# ---------------------------------------------------------------------------

PRIVATE_KEY_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")
PLACEHOLDER_SECRETS = frozenset({"0x", "0x" + "0" * 64})


@dataclass(frozen=True)
class WalletSlot:
    env: str
    id: str
    name: str
    role: str
    provider: str


WALLET_SLOTS: tuple[WalletSlot, ...] = (
    # MetaMask
    WalletSlot("CAT_MM_SELLER_WALLET_PRIVATE_KEY", "catmm_seller", "MetaMask Seller", "seller", "metamask"),
    WalletSlot("CAT_MM_BUYER_WALLET_PRIVATE_KEY", "catmm_buyer", "MetaMask Buyer", "buyer", "metamask"),
    WalletSlot(
        "CAT_MM_FINANCIER_WALLET_PRIVATE_KEY",
        "catmm_financier",
        "MetaMask Financier",
        "financier",
        "metamask",
    ),
    # Crossmint
    WalletSlot("CM_SELLER_WALLET_PRIVATE_KEY", "cm_seller", "Crossmint Seller", "seller", "crossmint"),
    WalletSlot("CM_BUYER_WALLET_PRIVATE_KEY", "cm_buyer", "Crossmint Buyer", "buyer", "crossmint"),
    # Civic
    WalletSlot("CVC_SELLER_WALLET_PRIVATE_KEY", "cvc_seller", "Civic Seller", "seller", "civic"),
    WalletSlot("CVC_BUYER_WALLET_PRIVATE_KEY", "cvc_buyer", "Civic Buyer", "buyer", "civic"),
    # Single-key fallback
    WalletSlot("WALLET_PRIVATE_KEY", "legacy_main", "Legacy Main Wallet", "legacy", "legacy"),
)


@dataclass(frozen=True)
class Identity:
    """One credential-bearing wallet tagged with a role and custody provider."""

    id: str
    name: str
    role: str
    provider: str
    address: str
    private_key: str = field(repr=False)

    def public_view(self) -> dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "provider": self.provider,
            "address": self.address,
        }


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------


def validate_secret(secret: str) -> str:
    secret = secret.strip()
    if secret in PLACEHOLDER_SECRETS:
        raise InvalidCredentialError("placeholder value")
    if not PRIVATE_KEY_PATTERN.match(secret):
        raise InvalidCredentialError("expected 0x followed by 64 hex characters")
    return secret


def derive_address(secret: str) -> str:
    """Return the checksummed account address for a private key."""
    try:
        return Account.from_key(secret).address
    except Exception as exc:  # noqa: BLE001
        raise InvalidCredentialError(f"cannot derive address: {type(exc).__name__}") from exc


def load_identities(
    env: Mapping[str, str],
    slots: Iterable[WalletSlot] = WALLET_SLOTS,
) -> list[Identity]:
    """
    Build identities from the configured wallet slots, in slot order.

    Missing or invalid slots are skipped; an invalid key is logged as a
    warning without echoing its value.
    """
    identities: list[Identity] = []
    for slot in slots:
        raw = env.get(slot.env)
        if not raw:
            logger.info(f"No private key found for {slot.name} ({slot.env})")
            continue
        try:
            secret = validate_secret(raw)
            address = derive_address(secret)
        except InvalidCredentialError as exc:
            logger.warning(f"Skipping {slot.name} ({slot.env}): {exc}")
            continue

        identities.append(
            Identity(
                id=slot.id,
                name=slot.name,
                role=slot.role,
                provider=slot.provider,
                address=address,
                private_key=secret,
            )
        )
        logger.info(f"Loaded {slot.name} ({address}) - role: {slot.role}")

    logger.info(f"Wallet management: {len(identities)} wallets loaded across all providers")
    if not identities:
        env_names = ", ".join(slot.env for slot in slots)
        logger.warning(
            "No valid wallet private keys found. Set one or more of: " + env_names
        )
    return identities


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class IdentityRegistry:
    """Ordered, read-only catalog of loaded identities keyed by id."""

    def __init__(self, identities: Iterable[Identity] = ()) -> None:
        self._by_id: dict[str, Identity] = {}
        for identity in identities:
            if identity.id in self._by_id:
                logger.warning(f"Duplicate wallet id '{identity.id}' ignored")
                continue
            self._by_id[identity.id] = identity

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> IdentityRegistry:
        return cls(load_identities(env))

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, identity_id: object) -> bool:
        return identity_id in self._by_id

    def get(self, identity_id: str | None) -> Identity | None:
        if identity_id is None:
            return None
        return self._by_id.get(identity_id)

    def list_all(self) -> list[Identity]:
        return list(self._by_id.values())

    def list_by_role(self, role: str) -> list[Identity]:
        return [i for i in self._by_id.values() if i.role == role]

    def list_by_provider(self, provider: str) -> list[Identity]:
        return [i for i in self._by_id.values() if i.provider == provider]

    def find_by_role_and_provider(self, role: str, provider: str) -> Identity | None:
        return next(
            (i for i in self._by_id.values() if i.role == role and i.provider == provider),
            None,
        )

    def summary(self) -> list[dict[str, Any]]:
        return [identity.public_view() for identity in self._by_id.values()]
