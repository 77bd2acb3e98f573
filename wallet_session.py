"""
Active wallet selection for the MCP server.

The session holds which identity is active and which one was last active.
Both ids live in one immutable SessionState that is replaced by a single
assignment, so a reader never sees a half-applied switch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from wallet_identities import Identity, IdentityNotFoundError, IdentityRegistry

logger = logging.getLogger(__name__)

PRIORITY_WALLET_ID = "catmm_seller"
DEFAULT_ROLE = "seller"
DEFAULT_PROVIDER = "metamask"


@dataclass(frozen=True)
class SessionState:
    active_id: str | None = None
    last_active_id: str | None = None


@dataclass(frozen=True)
class SwitchResult:
    identity: Identity
    requested_provider: str | None
    provider_honored: bool

    def message(self) -> str:
        text = f"Switched to {self.identity.role} wallet"
        if not self.provider_honored:
            text += (
                f" ({self.requested_provider} not available, using {self.identity.provider})"
            )
        return text


class WalletSession:
    """Owns the active/last-active wallet ids and the switching policy."""

    def __init__(
        self,
        registry: IdentityRegistry,
        priority_id: str | None = PRIORITY_WALLET_ID,
        default_role: str = DEFAULT_ROLE,
    ) -> None:
        self.registry = registry
        self.priority_id = priority_id
        self.default_role = default_role
        self._state = SessionState()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def active_id(self) -> str | None:
        return self._state.active_id

    @property
    def last_active_id(self) -> str | None:
        return self._state.last_active_id

    def _commit(self, identity: Identity) -> None:
        self._state = SessionState(active_id=identity.id, last_active_id=identity.id)

    def select_default(self) -> Identity | None:
        """
        Pick the startup wallet.

        The priority wallet wins when loaded; otherwise the first wallet with
        the default role, otherwise the first wallet loaded. An empty registry
        leaves the session without an active wallet.
        """
        chosen = self.registry.get(self.priority_id) if self.priority_id else None
        if chosen is not None:
            logger.info(f"Set current wallet to priority: {chosen.name}")
        else:
            candidates = self.registry.list_by_role(self.default_role) or self.registry.list_all()
            chosen = candidates[0] if candidates else None
            if chosen is not None:
                logger.info(f"Set current wallet to fallback: {chosen.name}")

        if chosen is None:
            logger.warning("No active wallet - use switch_to_seller/switch_to_buyer to activate")
            return None
        self._commit(chosen)
        return chosen

    def switch_to(self, role: str, preferred_provider: str | None = None) -> SwitchResult:
        target = None
        if preferred_provider:
            target = self.registry.find_by_role_and_provider(role, preferred_provider)
        if target is None:
            by_role = self.registry.list_by_role(role)
            target = by_role[0] if by_role else None
            if preferred_provider:
                logger.warning(
                    f"{preferred_provider} {role} not found, using fallback: "
                    f"{target.name if target else 'none'}"
                )
        if target is None:
            raise IdentityNotFoundError(role, self.registry.summary())

        self._commit(target)
        logger.info(f"Wallet switched to: {target.name} ({target.address})")
        honored = preferred_provider is None or target.provider == preferred_provider
        return SwitchResult(
            identity=target,
            requested_provider=preferred_provider,
            provider_honored=honored,
        )

    def switch_to_id(self, identity_id: str) -> Identity:
        target = self.registry.get(identity_id)
        if target is None:
            raise IdentityNotFoundError(identity_id, self.registry.summary())
        self._commit(target)
        logger.info(f"Wallet switched to: {target.name} ({target.address})")
        return target

    def current(self) -> Identity | None:
        return self.registry.get(self._state.active_id)

    def clear(self) -> None:
        """Unset the active wallet, keeping the last one for restore_last()."""
        self._state = SessionState(active_id=None, last_active_id=self._state.last_active_id)

    def restore_last(self) -> bool:
        """
        Reactivate the last active wallet.

        Returns True when the last wallet resolves and is (now) the active
        one. A session that is active on a different wallet is left alone.
        """
        last = self.registry.get(self._state.last_active_id)
        if last is None:
            return False
        if self._state.active_id not in (None, last.id) and self.current() is not None:
            return False
        if self._state.active_id != last.id:
            self._state = SessionState(active_id=last.id, last_active_id=last.id)
            logger.info(f"Restored last active wallet: {last.name}")
        return True
