#!/usr/bin/env python3
"""
MCP server for XDC multi-wallet operations.

Wallet management -- role/provider wallets loaded from the environment,
active wallet selection, switching with provider fallback, and restore.

Chain operations -- native and ERC-20 balances and transfers, gas estimates,
transaction status, NFT minting (ERC-721, ERC-721A, ERC-6960) and ERC-6960
fractional asset transfers.

On-chain tools -- a tool set built for the active wallet and exposed as
``onchain_<name>`` tools; it is rebuilt whenever the active wallet changes.

Wraps wallet_identities.py, wallet_session.py, onchain_tools.py and
xdc_chain.py as MCP tools.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from collections import Counter
from pathlib import Path
from typing import Any, Callable, List, Mapping

from dotenv import load_dotenv
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

# Load .env from current directory or parent directories
SERVER_DIR = Path(__file__).resolve().parent
load_dotenv(SERVER_DIR / ".env")
load_dotenv(SERVER_DIR.parent / ".env")

from onchain_tools import ToolRegistrySynchronizer, ToolSet, build_web3_tool_set  # noqa: E402
from wallet_identities import (  # noqa: E402
    WALLET_SLOTS,
    Identity,
    IdentityNotFoundError,
    IdentityRegistry,
    NoActiveIdentityError,
    ToolSetConstructionError,
)
from wallet_session import DEFAULT_PROVIDER, WalletSession  # noqa: E402
from xdc_chain import (  # noqa: E402
    CHAINS,
    ERC20_ABI,
    ERC721_ABI,
    ERC721A_ABI,
    ERC6960_ABI,
    ChainClient,
    Receipt,
    XDCConfig,
    ensure_address,
    format_ether,
    format_units,
    parse_ether,
    parse_units,
)

logger = logging.getLogger(__name__)

ONCHAIN_PREFIX = "onchain_"
SWITCH_INSTRUCTION = "Use switch_to_seller or switch_to_buyer to activate a wallet"


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class WalletContext:
    """
    Everything a handler needs: configuration, the identity registry, the
    active-wallet session, the on-chain tool synchronizer and per-network
    chain clients. Built once by main() and passed to every handler.
    """

    def __init__(
        self,
        cfg: XDCConfig,
        registry: IdentityRegistry,
        session: WalletSession | None = None,
        synchronizer: ToolRegistrySynchronizer | None = None,
        chain_factory: Callable[[XDCConfig, str], Any] = ChainClient.for_network,
    ) -> None:
        self.cfg = cfg
        self.registry = registry
        self.session = session or WalletSession(registry)
        self.chain_factory = chain_factory
        self._chains: dict[str, Any] = {}
        self.synchronizer = synchronizer or ToolRegistrySynchronizer(
            client_factory=lambda identity: self.chain(cfg.network).signer_client(identity),
            tool_factory=build_web3_tool_set,
        )

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> WalletContext:
        env = os.environ if env is None else env
        return cls(XDCConfig.from_env(env), IdentityRegistry.from_env(env))

    def chain(self, network: str | None = None) -> Any:
        network = (network or self.cfg.network).lower()
        if network not in self._chains:
            self._chains[network] = self.chain_factory(self.cfg, network)
        return self._chains[network]

    async def startup(self) -> None:
        current = self.session.select_default()
        if current is not None:
            await self.synchronizer.ensure_for(current)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _ok_response(data: dict[str, Any]) -> List[TextContent]:
    data["success"] = True
    return [TextContent(type="text", text=json.dumps(data, default=str))]


def _error_response(message: str, **extra: Any) -> List[TextContent]:
    payload = {"success": False, "error": message}
    payload.update(extra)
    return [TextContent(type="text", text=json.dumps(payload, default=str))]


def _no_active_wallet_response() -> List[TextContent]:
    return _error_response("No active wallet", instruction=SWITCH_INSTRUCTION)


def _require_str(arguments: dict[str, Any], key: str) -> str:
    value = arguments.get(key)
    value = str(value).strip() if value is not None else ""
    if not value:
        raise ValueError(f"Missing '{key}' parameter.")
    return value


def _optional_int(arguments: dict[str, Any], key: str) -> int | None:
    value = arguments.get(key)
    if value is None or value == "":
        return None
    try:
        return int(str(value))
    except ValueError as exc:
        raise ValueError(f"Invalid '{key}'. Must be an integer.") from exc


def _require_int(arguments: dict[str, Any], key: str) -> int:
    value = _optional_int(arguments, key)
    if value is None:
        raise ValueError(f"Missing '{key}' parameter.")
    return value


def _parse_int_list(value: Any, key: str) -> list[int]:
    if value is None or value == "":
        raise ValueError(f"Missing '{key}' parameter.")
    items = value if isinstance(value, list) else str(value).split(",")
    try:
        return [int(str(item).strip()) for item in items]
    except ValueError as exc:
        raise ValueError(f"Invalid '{key}'. Must be a list of integers.") from exc


def _network(ctx: WalletContext, arguments: dict[str, Any]) -> str:
    return (arguments.get("network") or ctx.cfg.network).lower()


def _active_identity(ctx: WalletContext) -> Identity:
    """Return the active wallet, restoring the last one if none is active."""
    if ctx.session.current() is None:
        ctx.session.restore_last()
    identity = ctx.session.current()
    if identity is None:
        raise NoActiveIdentityError(SWITCH_INSTRUCTION)
    return identity


async def _active_tool_set(ctx: WalletContext) -> tuple[Identity, ToolSet | None]:
    """
    Resolve the active wallet and its tool set.

    The binding is re-checked after every await so a switch that lands while
    a rebuild is in flight never lets the old wallet's tools through.
    """
    for _ in range(2):
        identity = _active_identity(ctx)
        if not await ctx.synchronizer.ensure_for(identity):
            return identity, None
        current = ctx.session.current()
        if current is not None and current.id == identity.id:
            tools = ctx.synchronizer.tools_for(identity.id)
            if tools is not None:
                return identity, tools
    raise ToolSetConstructionError("Active wallet changed while preparing on-chain tools")


def _tx_result(ctx: WalletContext, network: str, identity: Identity, tx_hash: str,
               receipt: Receipt, **extra: Any) -> dict[str, Any]:
    chain = ctx.chain(network).chain
    result = receipt.to_dict()
    result.update(extra)
    result.update({
        "transactionHash": tx_hash,
        "network": chain.name,
        "wallet": identity.name,
        "explorerUrl": chain.tx_url(tx_hash),
    })
    return result


async def _write_and_wait(ctx: WalletContext, identity: Identity, network: str, contract_address: str,
                          abi: list[dict[str, Any]], fn_name: str, args: list[Any],
                          gas: int | None) -> tuple[str, Receipt]:
    client = ctx.chain(network)
    tx_hash = await asyncio.to_thread(
        client.write_contract, identity, contract_address, abi, fn_name, args, gas
    )
    receipt = await asyncio.to_thread(client.wait_for_receipt, tx_hash)
    return tx_hash, receipt


def _wallet_env_hint(role: str) -> str:
    names = [slot.env for slot in WALLET_SLOTS if slot.role == role]
    if not names:
        return f"No wallet slots are defined for role '{role}'"
    return f"Set {role} wallet environment variables ({', '.join(names)})"


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_NETWORK_PROP = {
    "type": "string",
    "enum": list(CHAINS),
    "description": "Network: mainnet/testnet select XDC (defaults to the configured network)",
}
_GAS_PROP = {"type": "string", "description": "Optional gas limit for the transaction"}
_PROVIDER_PROP = {
    "type": "string",
    "enum": ["metamask", "crossmint", "civic"],
    "description": "Wallet provider preference (default: metamask)",
}


def _schema(properties: dict[str, Any] | None = None, required: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties or {}}
    if required:
        schema["required"] = required
    return schema


STATIC_TOOLS: list[Tool] = [
    # -- Wallet management --
    Tool(
        name="list_wallets",
        description="List all configured wallets with role, provider and address.",
        inputSchema=_schema(),
    ),
    Tool(
        name="get_current_wallet",
        description="Return the active wallet and whether on-chain tools are ready for it.",
        inputSchema=_schema(),
    ),
    Tool(
        name="switch_to_seller",
        description="Activate a seller wallet, preferring the given provider.",
        inputSchema=_schema({"provider": _PROVIDER_PROP}),
    ),
    Tool(
        name="switch_to_buyer",
        description="Activate a buyer wallet, preferring the given provider.",
        inputSchema=_schema({"provider": _PROVIDER_PROP}),
    ),
    Tool(
        name="switch_to_financier",
        description="Activate a financier wallet, preferring the given provider.",
        inputSchema=_schema({"provider": _PROVIDER_PROP}),
    ),
    Tool(
        name="switch_wallet",
        description=(
            "Activate a wallet by role, preferring the given provider. "
            "Falls back to any wallet with that role."
        ),
        inputSchema=_schema(
            {
                "role": {"type": "string", "description": "Wallet role, e.g. seller, buyer, financier"},
                "provider": {"type": "string", "description": "Preferred custody provider"},
            },
            ["role"],
        ),
    ),
    Tool(
        name="switch_wallet_by_id",
        description="Activate a specific wallet by its id (see list_wallets).",
        inputSchema=_schema(
            {"wallet_id": {"type": "string", "description": "Wallet id, e.g. catmm_seller, cm_buyer"}},
            ["wallet_id"],
        ),
    ),
    Tool(
        name="restore_last_wallet",
        description="Reactivate the last active wallet if none is active.",
        inputSchema=_schema(),
    ),
    Tool(
        name="get_wallet_info",
        description="Return the active wallet with its native balance on the given network.",
        inputSchema=_schema({"network": _NETWORK_PROP}),
    ),
    # -- Chain reads --
    Tool(
        name="get_native_balance",
        description="Return the native XDC balance of an address.",
        inputSchema=_schema(
            {"address": {"type": "string", "description": "Address to check"}, "network": _NETWORK_PROP},
            ["address"],
        ),
    ),
    Tool(
        name="get_network_info",
        description="Return chain id, current block and gas price for a network.",
        inputSchema=_schema({"network": _NETWORK_PROP}),
    ),
    Tool(
        name="estimate_gas",
        description="Estimate gas and cost for a transaction.",
        inputSchema=_schema(
            {
                "to": {"type": "string", "description": "Transaction recipient address"},
                "value": {"type": "string", "description": "Value to send in XDC"},
                "data": {"type": "string", "description": "Transaction data (for contract calls)"},
                "network": _NETWORK_PROP,
            },
            ["to"],
        ),
    ),
    Tool(
        name="get_transaction_status",
        description="Return the receipt or pending status of a transaction.",
        inputSchema=_schema(
            {
                "transaction_hash": {"type": "string", "description": "Transaction hash to check"},
                "network": _NETWORK_PROP,
            },
            ["transaction_hash"],
        ),
    ),
    Tool(
        name="get_erc20_balance",
        description="Return an ERC-20 token balance. Defaults to the active wallet.",
        inputSchema=_schema(
            {
                "token_address": {"type": "string", "description": "ERC-20 token contract address"},
                "wallet_address": {"type": "string", "description": "Wallet address to check"},
                "network": _NETWORK_PROP,
            },
            ["token_address"],
        ),
    ),
    Tool(
        name="get_token_info",
        description="Return name, symbol, decimals and total supply of an ERC-20 token.",
        inputSchema=_schema(
            {
                "contract_address": {"type": "string", "description": "Token contract address"},
                "network": _NETWORK_PROP,
            },
            ["contract_address"],
        ),
    ),
    Tool(
        name="get_nft_info",
        description="Return the owner and token URI of an ERC-721 token.",
        inputSchema=_schema(
            {
                "contract_address": {"type": "string", "description": "NFT contract address"},
                "token_id": {"type": "string", "description": "Token ID to query"},
                "network": _NETWORK_PROP,
            },
            ["contract_address", "token_id"],
        ),
    ),
    # -- Transfers --
    Tool(
        name="send_native_token",
        description=(
            "Send native XDC from the active wallet and wait for the receipt. "
            "Requires explicit user confirmation."
        ),
        inputSchema=_schema(
            {
                "to": {"type": "string", "description": "Recipient address"},
                "amount": {"type": "string", "description": "Amount in XDC"},
                "network": _NETWORK_PROP,
                "gas_limit": _GAS_PROP,
            },
            ["to", "amount"],
        ),
    ),
    Tool(
        name="send_erc20_token",
        description=(
            "Send an ERC-20 token from the active wallet and wait for the receipt. "
            "Requires explicit user confirmation."
        ),
        inputSchema=_schema(
            {
                "token_address": {"type": "string", "description": "ERC-20 token contract address"},
                "to": {"type": "string", "description": "Recipient address"},
                "amount": {"type": "string", "description": "Amount in token units"},
                "network": _NETWORK_PROP,
                "gas_limit": _GAS_PROP,
            },
            ["token_address", "to", "amount"],
        ),
    ),
    # -- NFT minting --
    Tool(
        name="mint_nft_advanced",
        description=(
            "Mint with the active wallet using ERC-721 (token_id or token_uri), "
            "ERC-721A (quantity or token_uri) or ERC-6960 (main_id, sub_id, amount)."
        ),
        inputSchema=_schema(
            {
                "contract_address": {"type": "string", "description": "NFT contract address"},
                "to": {"type": "string", "description": "Recipient address"},
                "token_id": {"type": "string", "description": "Token ID (if required by contract)"},
                "token_uri": {"type": "string", "description": "Token URI/metadata URL"},
                "quantity": {"type": "string", "description": "Quantity for ERC-721A batch minting"},
                "main_id": {"type": "string", "description": "ERC-6960 main ID"},
                "sub_id": {"type": "string", "description": "ERC-6960 sub ID"},
                "amount": {"type": "string", "description": "ERC-6960 amount"},
                "standard": {
                    "type": "string",
                    "enum": ["erc721", "erc721a", "erc6960"],
                    "description": "Token standard (default: erc721)",
                },
                "network": _NETWORK_PROP,
                "gas_limit": _GAS_PROP,
            },
            ["contract_address", "to"],
        ),
    ),
    Tool(
        name="mint_nft_with_active_wallet",
        description="Mint an ERC-721 token with the active wallet using token_uri or token_id.",
        inputSchema=_schema(
            {
                "contract_address": {"type": "string", "description": "NFT contract address"},
                "to": {"type": "string", "description": "Recipient address"},
                "token_uri": {"type": "string", "description": "Token URI/metadata URL"},
                "token_id": {"type": "string", "description": "Token ID (if required by contract)"},
                "network": _NETWORK_PROP,
            },
            ["contract_address", "to"],
        ),
    ),
    # -- ERC-6960 fractional assets --
    Tool(
        name="mint_erc6960_batch",
        description="Batch mint ERC-6960 dual-layer tokens with the active wallet.",
        inputSchema=_schema(
            {
                "contract_address": {"type": "string", "description": "ERC-6960 contract address"},
                "to": {"type": "string", "description": "Recipient address"},
                "main_ids": {"type": "string", "description": "Comma-separated main IDs"},
                "sub_ids": {"type": "string", "description": "Comma-separated sub IDs"},
                "amounts": {"type": "string", "description": "Comma-separated amounts"},
                "network": _NETWORK_PROP,
                "gas_limit": _GAS_PROP,
            },
            ["contract_address", "to", "main_ids", "sub_ids", "amounts"],
        ),
    ),
    Tool(
        name="get_erc6960_balance",
        description="Return the ERC-6960 balance of an account for a main/sub ID pair.",
        inputSchema=_schema(
            {
                "contract_address": {"type": "string", "description": "ERC-6960 contract address"},
                "account": {"type": "string", "description": "Account address to check"},
                "main_id": {"type": "string", "description": "Main ID of the token"},
                "sub_id": {"type": "string", "description": "Sub ID of the token"},
                "network": _NETWORK_PROP,
            },
            ["contract_address", "account", "main_id", "sub_id"],
        ),
    ),
    Tool(
        name="get_erc6960_uri",
        description="Return the metadata URI of an ERC-6960 main/sub ID pair.",
        inputSchema=_schema(
            {
                "contract_address": {"type": "string", "description": "ERC-6960 contract address"},
                "main_id": {"type": "string", "description": "Main ID of the token"},
                "sub_id": {"type": "string", "description": "Sub ID of the token"},
                "network": _NETWORK_PROP,
            },
            ["contract_address", "main_id", "sub_id"],
        ),
    ),
    Tool(
        name="transfer_erc6960",
        description="Transfer ERC-6960 fractional tokens from the active wallet.",
        inputSchema=_schema(
            {
                "contract_address": {"type": "string", "description": "ERC-6960 contract address"},
                "to": {"type": "string", "description": "Recipient address"},
                "main_id": {"type": "string", "description": "Main ID of the token"},
                "sub_id": {"type": "string", "description": "Sub ID of the token"},
                "amount": {"type": "string", "description": "Amount to transfer"},
                "network": _NETWORK_PROP,
                "gas_limit": _GAS_PROP,
            },
            ["contract_address", "to", "main_id", "sub_id", "amount"],
        ),
    ),
    # -- On-chain tool set --
    Tool(
        name="list_available_onchain_tools",
        description="List the on-chain tools built for the active wallet.",
        inputSchema=_schema(
            {"show_details": {"type": "boolean", "description": "Include descriptions and schemas"}}
        ),
    ),
    Tool(
        name="get_onchain_tool_info",
        description="Describe one on-chain tool (name without the onchain_ prefix).",
        inputSchema=_schema(
            {"tool_name": {"type": "string", "description": "Name of the on-chain tool"}},
            ["tool_name"],
        ),
    ),
]


def list_tool_definitions(ctx: WalletContext) -> List[Tool]:
    tools = list(STATIC_TOOLS)
    current = ctx.session.current()
    tool_set = ctx.synchronizer.tools_for(current.id) if current else None
    if tool_set is not None:
        for op in tool_set.list_operations():
            tools.append(
                Tool(
                    name=f"{ONCHAIN_PREFIX}{op.name}",
                    description=op.description or f"On-chain tool {op.name}",
                    inputSchema=op.to_input_schema(),
                )
            )
    return tools


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


async def dispatch(ctx: WalletContext, name: str, arguments: Any) -> List[TextContent]:
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        return _error_response("Invalid arguments. Expected an object.")

    try:
        # Wallet management
        if name == "list_wallets":
            return await _handle_list_wallets(ctx)
        if name == "get_current_wallet":
            return await _handle_get_current_wallet(ctx)
        if name == "switch_to_seller":
            return await _handle_switch(ctx, "seller", arguments.get("provider") or DEFAULT_PROVIDER)
        if name == "switch_to_buyer":
            return await _handle_switch(ctx, "buyer", arguments.get("provider") or DEFAULT_PROVIDER)
        if name == "switch_to_financier":
            return await _handle_switch(ctx, "financier", arguments.get("provider") or DEFAULT_PROVIDER)
        if name == "switch_wallet":
            return await _handle_switch(ctx, _require_str(arguments, "role"), arguments.get("provider"))
        if name == "switch_wallet_by_id":
            return await _handle_switch_by_id(ctx, _require_str(arguments, "wallet_id"))
        if name == "restore_last_wallet":
            return await _handle_restore_last_wallet(ctx)
        if name == "get_wallet_info":
            return await _handle_get_wallet_info(ctx, arguments)

        # Chain reads
        if name == "get_native_balance":
            return await _handle_get_native_balance(ctx, arguments)
        if name == "get_network_info":
            return await _handle_get_network_info(ctx, arguments)
        if name == "estimate_gas":
            return await _handle_estimate_gas(ctx, arguments)
        if name == "get_transaction_status":
            return await _handle_get_transaction_status(ctx, arguments)
        if name == "get_erc20_balance":
            return await _handle_get_erc20_balance(ctx, arguments)
        if name == "get_token_info":
            return await _handle_get_token_info(ctx, arguments)
        if name == "get_nft_info":
            return await _handle_get_nft_info(ctx, arguments)

        # Transfers
        if name == "send_native_token":
            return await _handle_send_native_token(ctx, arguments)
        if name == "send_erc20_token":
            return await _handle_send_erc20_token(ctx, arguments)

        # NFT minting
        if name == "mint_nft_advanced":
            return await _handle_mint_nft_advanced(ctx, arguments)
        if name == "mint_nft_with_active_wallet":
            return await _handle_mint_nft_with_active_wallet(ctx, arguments)

        # ERC-6960
        if name == "mint_erc6960_batch":
            return await _handle_mint_erc6960_batch(ctx, arguments)
        if name == "get_erc6960_balance":
            return await _handle_get_erc6960_balance(ctx, arguments)
        if name == "get_erc6960_uri":
            return await _handle_get_erc6960_uri(ctx, arguments)
        if name == "transfer_erc6960":
            return await _handle_transfer_erc6960(ctx, arguments)

        # On-chain tool set
        if name == "list_available_onchain_tools":
            return await _handle_list_onchain_tools(ctx, arguments)
        if name == "get_onchain_tool_info":
            return await _handle_get_onchain_tool_info(ctx, arguments)
        if name.startswith(ONCHAIN_PREFIX):
            return await _handle_onchain_tool(ctx, name[len(ONCHAIN_PREFIX):], arguments)

    except NoActiveIdentityError:
        return _no_active_wallet_response()
    except Exception as exc:  # noqa: BLE001
        logger.error(f"Tool {name} failed: {exc}")
        return _error_response(str(exc))

    return _error_response(f"Unknown tool: {name}")


# ---------------------------------------------------------------------------
# Handlers -- Wallet management
# ---------------------------------------------------------------------------


async def _handle_list_wallets(ctx: WalletContext) -> List[TextContent]:
    wallets = ctx.registry.list_all()
    current = ctx.session.current()
    return _ok_response({
        "total": len(wallets),
        "currentWallet": current.id if current else None,
        "wallets": [
            {**w.public_view(), "isActive": current is not None and w.id == current.id}
            for w in wallets
        ],
        "byProvider": dict(Counter(w.provider for w in wallets)),
    })


async def _handle_get_current_wallet(ctx: WalletContext) -> List[TextContent]:
    identity = _active_identity(ctx)
    ready = await ctx.synchronizer.ensure_for(identity)
    return _ok_response({
        **identity.public_view(),
        "onchainTools": ready,
        "onchainToolsWalletMatch": ctx.synchronizer.bound_identity_id == identity.id,
        "readyForOperations": ready,
    })


async def _handle_switch(ctx: WalletContext, role: str, provider: str | None) -> List[TextContent]:
    try:
        result = ctx.session.switch_to(role, provider)
    except IdentityNotFoundError as exc:
        return _error_response(
            str(exc),
            availableWallets=exc.available,
            instruction=_wallet_env_hint(role),
        )

    identity = result.identity
    ready = await ctx.synchronizer.force_rebuild(identity)
    return _ok_response({
        "message": result.message(),
        "wallet": identity.public_view(),
        "requestedProvider": result.requested_provider,
        "providerHonored": result.provider_honored,
        "onchainToolsReinitialized": ready,
        "readyForOperations": ready,
    })


async def _handle_switch_by_id(ctx: WalletContext, wallet_id: str) -> List[TextContent]:
    try:
        identity = ctx.session.switch_to_id(wallet_id)
    except IdentityNotFoundError as exc:
        return _error_response(f"No wallet with id '{wallet_id}'", availableWallets=exc.available)

    ready = await ctx.synchronizer.force_rebuild(identity)
    return _ok_response({
        "message": f"Switched to {identity.name}",
        "wallet": identity.public_view(),
        "onchainToolsReinitialized": ready,
        "readyForOperations": ready,
    })


async def _handle_restore_last_wallet(ctx: WalletContext) -> List[TextContent]:
    restored = ctx.session.restore_last()
    current = ctx.session.current()
    if current is None:
        return _no_active_wallet_response()
    return _ok_response({"restored": restored, "wallet": current.public_view()})


async def _handle_get_wallet_info(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    identity = _active_identity(ctx)
    network = _network(ctx, arguments)
    client = ctx.chain(network)
    ready = await ctx.synchronizer.ensure_for(identity)
    result: dict[str, Any] = {
        "source": "Managed Wallet",
        **identity.public_view(),
        "network": client.chain.name,
        "chainId": client.chain.chain_id,
        "onchainTools": ready,
        "onchainToolsWalletMatch": ctx.synchronizer.bound_identity_id == identity.id,
        "readyForOperations": ready,
    }
    try:
        balance = await asyncio.to_thread(client.get_balance, identity.address)
        result["balance"] = f"{format_ether(balance)} {client.chain.native_symbol}"
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"Balance lookup failed for {identity.address}: {exc}")
        result["note"] = "Could not fetch balance - network might be unavailable"
    return _ok_response(result)


# ---------------------------------------------------------------------------
# Handlers -- Chain reads
# ---------------------------------------------------------------------------


async def _handle_get_native_balance(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    address = ensure_address(_require_str(arguments, "address"))
    client = ctx.chain(_network(ctx, arguments))
    balance = await asyncio.to_thread(client.get_balance, address)
    return _ok_response({
        "address": address,
        "balance": format_ether(balance),
        "balance_wei": str(balance),
        "symbol": client.chain.native_symbol,
        "network": client.chain.name,
    })


async def _handle_get_network_info(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    client = ctx.chain(_network(ctx, arguments))
    block_number = await asyncio.to_thread(client.get_block_number)
    gas_price = await asyncio.to_thread(client.get_gas_price)
    return _ok_response({
        "network": client.chain.name,
        "chainId": client.chain.chain_id,
        "currentBlock": str(block_number),
        "gasPrice": f"{format_ether(gas_price)} {client.chain.native_symbol}",
        "rpcUrl": client.rpc_url,
        "explorer": client.chain.explorer_url,
    })


async def _handle_estimate_gas(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    to = _require_str(arguments, "to")
    value = arguments.get("value")
    value_wei = parse_ether(value, allow_zero=True) if value not in (None, "") else 0
    client = ctx.chain(_network(ctx, arguments))
    gas = await asyncio.to_thread(client.estimate_gas, to, value_wei, arguments.get("data"))
    gas_price = await asyncio.to_thread(client.get_gas_price)
    symbol = client.chain.native_symbol
    return _ok_response({
        "estimatedGas": str(gas),
        "gasPrice": f"{format_ether(gas_price)} {symbol}",
        "estimatedCost": f"{format_ether(gas * gas_price)} {symbol}",
        "network": client.chain.name,
        "note": "These are estimates and actual gas usage may vary",
    })


async def _handle_get_transaction_status(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    tx_hash = _require_str(arguments, "transaction_hash")
    client = ctx.chain(_network(ctx, arguments))
    result = await asyncio.to_thread(client.get_transaction_status, tx_hash)
    result["network"] = client.chain.name
    result["explorerUrl"] = client.chain.tx_url(tx_hash)
    return _ok_response(result)


async def _handle_get_erc20_balance(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    token_address = ensure_address(_require_str(arguments, "token_address"))
    wallet_address = (arguments.get("wallet_address") or "").strip()
    if not wallet_address:
        wallet_address = _active_identity(ctx).address
    wallet_address = ensure_address(wallet_address)
    client = ctx.chain(_network(ctx, arguments))
    balance, decimals, symbol = await asyncio.gather(
        asyncio.to_thread(client.call_contract, token_address, ERC20_ABI, "balanceOf", [wallet_address]),
        asyncio.to_thread(client.call_contract, token_address, ERC20_ABI, "decimals"),
        asyncio.to_thread(client.call_contract, token_address, ERC20_ABI, "symbol"),
    )
    return _ok_response({
        "tokenAddress": token_address,
        "walletAddress": wallet_address,
        "balance": format_units(balance, decimals),
        "symbol": symbol,
        "network": client.chain.name,
    })


async def _handle_get_token_info(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    contract_address = ensure_address(_require_str(arguments, "contract_address"))
    client = ctx.chain(_network(ctx, arguments))
    name, symbol, decimals, total_supply = await asyncio.gather(
        *(
            asyncio.to_thread(client.call_contract, contract_address, ERC20_ABI, fn)
            for fn in ("name", "symbol", "decimals", "totalSupply")
        )
    )
    return _ok_response({
        "name": name,
        "symbol": symbol,
        "decimals": decimals,
        "totalSupply": format_units(total_supply, decimals),
        "contractAddress": contract_address,
        "network": client.chain.name,
    })


async def _handle_get_nft_info(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    contract_address = ensure_address(_require_str(arguments, "contract_address"))
    token_id = _require_int(arguments, "token_id")
    client = ctx.chain(_network(ctx, arguments))
    owner, token_uri = await asyncio.gather(
        asyncio.to_thread(client.call_contract, contract_address, ERC721_ABI, "ownerOf", [token_id]),
        asyncio.to_thread(client.call_contract, contract_address, ERC721_ABI, "tokenURI", [token_id]),
    )
    return _ok_response({
        "contractAddress": contract_address,
        "tokenId": str(token_id),
        "owner": owner,
        "tokenURI": token_uri,
        "network": client.chain.name,
    })


# ---------------------------------------------------------------------------
# Handlers -- Transfers
# ---------------------------------------------------------------------------


async def _handle_send_native_token(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    identity = _active_identity(ctx)
    to = ensure_address(_require_str(arguments, "to"))
    amount = _require_str(arguments, "amount")
    amount_wei = parse_ether(amount)
    gas = _optional_int(arguments, "gas_limit")
    network = _network(ctx, arguments)
    await ctx.synchronizer.ensure_for(identity)

    client = ctx.chain(network)
    tx_hash = await asyncio.to_thread(client.send_value, identity, to, amount_wei, gas)
    receipt = await asyncio.to_thread(client.wait_for_receipt, tx_hash)
    return _ok_response(_tx_result(
        ctx, network, identity, tx_hash, receipt,
        operation="Send native token",
        amount=f"{amount} {client.chain.native_symbol}",
    ))


async def _handle_send_erc20_token(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    identity = _active_identity(ctx)
    token_address = ensure_address(_require_str(arguments, "token_address"))
    to = ensure_address(_require_str(arguments, "to"))
    amount = _require_str(arguments, "amount")
    gas = _optional_int(arguments, "gas_limit")
    network = _network(ctx, arguments)
    await ctx.synchronizer.ensure_for(identity)

    client = ctx.chain(network)
    decimals, symbol = await asyncio.gather(
        asyncio.to_thread(client.call_contract, token_address, ERC20_ABI, "decimals"),
        asyncio.to_thread(client.call_contract, token_address, ERC20_ABI, "symbol"),
    )
    tx_hash, receipt = await _write_and_wait(
        ctx, identity, network, token_address, ERC20_ABI, "transfer",
        [to, parse_units(amount, decimals)], gas,
    )
    return _ok_response(_tx_result(
        ctx, network, identity, tx_hash, receipt,
        operation="Send ERC-20 token",
        amount=f"{amount} {symbol}",
        tokenAddress=token_address,
    ))


# ---------------------------------------------------------------------------
# Handlers -- NFT minting
# ---------------------------------------------------------------------------


def _mint_call(standard: str, to: str, arguments: dict[str, Any]) -> tuple[list[dict[str, Any]], str, list[Any], str]:
    """Pick the ABI, function and arguments for a mint by token standard."""
    token_uri = (arguments.get("token_uri") or "").strip()
    if standard == "erc721a":
        quantity = _optional_int(arguments, "quantity")
        if quantity is not None:
            return ERC721A_ABI, "mint", [to, quantity], f"Batch mint {quantity} ERC-721A NFTs"
        if token_uri:
            return ERC721A_ABI, "safeMint", [to, token_uri], "Mint ERC-721A NFT with URI"
        raise ValueError("ERC-721A requires either quantity for batch mint or token_uri for single mint")

    if standard == "erc6960":
        main_id = _optional_int(arguments, "main_id")
        sub_id = _optional_int(arguments, "sub_id")
        amount = _optional_int(arguments, "amount")
        if main_id is None or sub_id is None or amount is None:
            raise ValueError("ERC-6960 requires main_id, sub_id, and amount")
        return (
            ERC6960_ABI,
            "mint",
            [to, main_id, sub_id, amount, b""],
            f"Mint ERC-6960 token (Main: {main_id}, Sub: {sub_id}, Amount: {amount})",
        )

    if standard != "erc721":
        raise ValueError(f"Unsupported standard: {standard}. Use erc721, erc721a or erc6960.")
    if token_uri:
        return ERC721_ABI, "safeMint", [to, token_uri], "Mint ERC-721 NFT with URI"
    token_id = _optional_int(arguments, "token_id")
    if token_id is not None:
        return ERC721_ABI, "mint", [to, token_id], f"Mint ERC-721 NFT with token ID {token_id}"
    raise ValueError("ERC-721 requires either token_id or token_uri")


async def _handle_mint_nft_advanced(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    identity = _active_identity(ctx)
    contract_address = ensure_address(_require_str(arguments, "contract_address"))
    to = ensure_address(_require_str(arguments, "to"))
    standard = (arguments.get("standard") or "erc721").lower()
    abi, fn_name, args, operation = _mint_call(standard, to, arguments)
    network = _network(ctx, arguments)
    await ctx.synchronizer.ensure_for(identity)

    tx_hash, receipt = await _write_and_wait(
        ctx, identity, network, contract_address, abi, fn_name, args, _optional_int(arguments, "gas_limit")
    )
    return _ok_response(_tx_result(
        ctx, network, identity, tx_hash, receipt,
        operation=operation,
        standard=standard,
        contractAddress=contract_address,
        recipient=to,
        details={
            "tokenId": arguments.get("token_id") or "Generated by contract",
            "tokenURI": arguments.get("token_uri") or "N/A",
            "quantity": arguments.get("quantity") or "1",
            "mainId": arguments.get("main_id") or "N/A",
            "subId": arguments.get("sub_id") or "N/A",
            "amount": arguments.get("amount") or "N/A",
        },
    ))


async def _handle_mint_nft_with_active_wallet(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    identity = _active_identity(ctx)
    contract_address = ensure_address(_require_str(arguments, "contract_address"))
    to = ensure_address(_require_str(arguments, "to"))
    if not arguments.get("token_uri") and arguments.get("token_id") in (None, ""):
        raise ValueError("Either token_uri or token_id required")
    abi, fn_name, args, operation = _mint_call("erc721", to, arguments)
    network = _network(ctx, arguments)
    await ctx.synchronizer.ensure_for(identity)

    tx_hash, receipt = await _write_and_wait(ctx, identity, network, contract_address, abi, fn_name, args, None)
    return _ok_response(_tx_result(
        ctx, network, identity, tx_hash, receipt,
        operation=operation,
        tokenId=arguments.get("token_id") or "Generated",
        tokenURI=arguments.get("token_uri") or "N/A",
    ))


# ---------------------------------------------------------------------------
# Handlers -- ERC-6960
# ---------------------------------------------------------------------------


async def _handle_mint_erc6960_batch(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    identity = _active_identity(ctx)
    contract_address = ensure_address(_require_str(arguments, "contract_address"))
    to = ensure_address(_require_str(arguments, "to"))
    main_ids = _parse_int_list(arguments.get("main_ids"), "main_ids")
    sub_ids = _parse_int_list(arguments.get("sub_ids"), "sub_ids")
    amounts = _parse_int_list(arguments.get("amounts"), "amounts")
    if not len(main_ids) == len(sub_ids) == len(amounts):
        raise ValueError("main_ids, sub_ids, and amounts must have the same length")
    network = _network(ctx, arguments)
    await ctx.synchronizer.ensure_for(identity)

    tx_hash, receipt = await _write_and_wait(
        ctx, identity, network, contract_address, ERC6960_ABI, "mintBatch",
        [to, main_ids, sub_ids, amounts, b""], _optional_int(arguments, "gas_limit"),
    )
    return _ok_response(_tx_result(
        ctx, network, identity, tx_hash, receipt,
        operation="Batch mint ERC-6960 tokens",
        contractAddress=contract_address,
        recipient=to,
        details={
            "mainIds": main_ids,
            "subIds": sub_ids,
            "amounts": amounts,
            "tokenCount": len(main_ids),
        },
    ))


async def _handle_get_erc6960_balance(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    contract_address = ensure_address(_require_str(arguments, "contract_address"))
    account = ensure_address(_require_str(arguments, "account"))
    main_id = _require_int(arguments, "main_id")
    sub_id = _require_int(arguments, "sub_id")
    client = ctx.chain(_network(ctx, arguments))
    balance = await asyncio.to_thread(
        client.call_contract, contract_address, ERC6960_ABI, "balanceOf", [account, main_id, sub_id]
    )
    return _ok_response({
        "account": account,
        "contractAddress": contract_address,
        "mainId": str(main_id),
        "subId": str(sub_id),
        "balance": str(balance),
        "network": client.chain.name,
    })


async def _handle_get_erc6960_uri(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    contract_address = ensure_address(_require_str(arguments, "contract_address"))
    main_id = _require_int(arguments, "main_id")
    sub_id = _require_int(arguments, "sub_id")
    client = ctx.chain(_network(ctx, arguments))
    uri = await asyncio.to_thread(
        client.call_contract, contract_address, ERC6960_ABI, "uri", [main_id, sub_id]
    )
    return _ok_response({
        "contractAddress": contract_address,
        "mainId": str(main_id),
        "subId": str(sub_id),
        "uri": uri,
        "network": client.chain.name,
    })


async def _handle_transfer_erc6960(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    identity = _active_identity(ctx)
    contract_address = ensure_address(_require_str(arguments, "contract_address"))
    to = ensure_address(_require_str(arguments, "to"))
    main_id = _require_int(arguments, "main_id")
    sub_id = _require_int(arguments, "sub_id")
    amount = _require_int(arguments, "amount")
    network = _network(ctx, arguments)
    await ctx.synchronizer.ensure_for(identity)

    tx_hash, receipt = await _write_and_wait(
        ctx, identity, network, contract_address, ERC6960_ABI, "safeTransferFrom",
        [identity.address, to, main_id, sub_id, amount, b""], _optional_int(arguments, "gas_limit"),
    )
    return _ok_response(_tx_result(
        ctx, network, identity, tx_hash, receipt,
        operation="Transfer ERC-6960 token",
        contractAddress=contract_address,
        details={"mainId": str(main_id), "subId": str(sub_id), "amount": str(amount)},
    ))


# ---------------------------------------------------------------------------
# Handlers -- On-chain tool set
# ---------------------------------------------------------------------------


async def _handle_list_onchain_tools(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    identity, tools = await _active_tool_set(ctx)
    if tools is None:
        return _error_response(
            "On-chain tools not initialized",
            wallet=identity.name,
            instruction="Check the RPC endpoint and switch wallets to retry",
        )
    ops = tools.list_operations()
    if arguments.get("show_details"):
        return _ok_response({
            "wallet": identity.name,
            "totalCount": len(ops),
            "tools": [op.summary(ONCHAIN_PREFIX) for op in ops],
        })
    return _ok_response({
        "wallet": identity.name,
        "totalCount": len(ops),
        "toolNames": [f"{ONCHAIN_PREFIX}{op.name}" for op in ops],
        "note": "Use 'list_available_onchain_tools' with show_details=true for more information",
    })


async def _handle_get_onchain_tool_info(ctx: WalletContext, arguments: dict[str, Any]) -> List[TextContent]:
    tool_name = _require_str(arguments, "tool_name")
    if tool_name.startswith(ONCHAIN_PREFIX):
        tool_name = tool_name[len(ONCHAIN_PREFIX):]
    identity, tools = await _active_tool_set(ctx)
    if tools is None:
        return _error_response("On-chain tools not initialized", wallet=identity.name)
    ops = {op.name: op for op in tools.list_operations()}
    op = ops.get(tool_name)
    if op is None:
        return _error_response(
            "Tool not found",
            requestedTool=tool_name,
            availableTools=sorted(ops),
        )
    info = op.summary(ONCHAIN_PREFIX)
    info["usage"] = f"Call the tool directly using: {ONCHAIN_PREFIX}{op.name}"
    return _ok_response(info)


async def _handle_onchain_tool(ctx: WalletContext, op_name: str, arguments: dict[str, Any]) -> List[TextContent]:
    identity, tools = await _active_tool_set(ctx)
    if tools is None:
        return _error_response(
            f"On-chain tools unavailable for wallet {identity.name}",
            instruction="Check the RPC endpoint and switch wallets to retry",
        )
    if op_name not in {op.name for op in tools.list_operations()}:
        return _error_response(f"Unknown tool: {ONCHAIN_PREFIX}{op_name}")
    logger.info(f"Executing on-chain tool {op_name} for {identity.name}")
    result = await asyncio.to_thread(tools.invoke, op_name, arguments)
    return _ok_response({"tool": op_name, "wallet": identity.name, "result": result})


# ---------------------------------------------------------------------------
# Server wiring
# ---------------------------------------------------------------------------


def create_server(ctx: WalletContext) -> Server:
    app = Server("xdc_wallet")

    @app.list_tools()
    async def list_tools() -> List[Tool]:
        return list_tool_definitions(ctx)

    @app.call_tool()
    async def call_tool(name: str, arguments: Any) -> List[TextContent]:
        bound_before = ctx.synchronizer.bound_identity_id
        response = await dispatch(ctx, name, arguments)
        if ctx.synchronizer.bound_identity_id != bound_before:
            await _notify_tool_list_changed(app)
        return response

    return app


async def _notify_tool_list_changed(app: Server) -> None:
    try:
        await app.request_context.session.send_tool_list_changed()
    except LookupError:
        pass
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"Could not send tool list change notification: {exc}")


def initialization_options(app: Server) -> InitializationOptions:
    # onchain_* tools change with the active wallet
    return app.create_initialization_options(
        notification_options=NotificationOptions(tools_changed=True)
    )


def _configure_logging(level: str) -> None:
    # stdout carries the MCP stdio transport
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def main() -> None:
    _configure_logging(XDCConfig.from_env().log_level)
    ctx = WalletContext.from_env()
    await ctx.startup()

    current = ctx.session.current()
    if current:
        logger.info(
            f"Active wallet: {current.name} ({current.address}) - role: {current.role} "
            f"- provider: {current.provider}"
        )
    providers = Counter(w.provider for w in ctx.registry.list_all())
    logger.info(f"Total configured wallets: {len(ctx.registry)} {dict(providers)}")

    app = create_server(ctx)
    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, initialization_options(app))


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
