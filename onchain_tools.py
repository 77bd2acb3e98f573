"""
On-chain tool sets bound to the active wallet.

A tool set is a bundle of operations built for exactly one wallet. Building
one is expensive (RPC round trips), so ToolRegistrySynchronizer keeps a single
live tool set and rebuilds it only when the wallet changes or a rebuild is
forced after a switch.

Operation parameters are described by a small tagged union (ParamType) that
is rendered to JSON Schema for the MCP tool listing. Unknown parameter types
pass through as OTHER.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Protocol

from web3 import Web3

from wallet_identities import Identity, ToolSetConstructionError
from xdc_chain import ERC20_ABI, SignerClient, ensure_address, format_ether, format_units, parse_units

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Operation descriptors
# ---------------------------------------------------------------------------


class ParamType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: Any) -> ParamType:
        if raw == "integer":
            return cls.NUMBER
        try:
            return cls(raw)
        except ValueError:
            return cls.OTHER

    def json_schema(self) -> dict[str, Any]:
        if self is ParamType.OTHER:
            return {}
        return {"type": self.value}

    def accepts(self, value: Any) -> bool:
        if self is ParamType.STRING:
            return isinstance(value, str)
        if self is ParamType.NUMBER:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        if self is ParamType.BOOLEAN:
            return isinstance(value, bool)
        return True


@dataclass(frozen=True)
class OpParam:
    name: str
    type: ParamType
    description: str = ""
    required: bool = False


@dataclass(frozen=True)
class OpDescriptor:
    name: str
    description: str = ""
    params: tuple[OpParam, ...] = ()

    @classmethod
    def from_json_schema(cls, name: str, description: str, schema: Mapping[str, Any] | None) -> OpDescriptor:
        schema = schema or {}
        required = set(schema.get("required") or [])
        params = tuple(
            OpParam(
                name=key,
                type=ParamType.parse(prop.get("type")),
                description=prop.get("description", ""),
                required=key in required,
            )
            for key, prop in (schema.get("properties") or {}).items()
        )
        return cls(name=name, description=description, params=params)

    def to_input_schema(self) -> dict[str, Any]:
        if not self.params:
            return {
                "type": "object",
                "properties": {"input": {"description": "Tool input parameters"}},
            }
        properties: dict[str, Any] = {}
        for param in self.params:
            prop = param.type.json_schema()
            if param.description:
                prop["description"] = param.description
            properties[param.name] = prop
        schema: dict[str, Any] = {"type": "object", "properties": properties}
        required = [p.name for p in self.params if p.required]
        if required:
            schema["required"] = required
        return schema

    def validate_args(self, args: Mapping[str, Any]) -> dict[str, Any]:
        for param in self.params:
            if param.name not in args or args[param.name] is None:
                if param.required:
                    raise ValueError(f"Missing '{param.name}' parameter.")
                continue
            if not param.type.accepts(args[param.name]):
                raise ValueError(f"Invalid '{param.name}'. Expected {param.type.value}.")
        return dict(args)

    def summary(self, prefix: str = "") -> dict[str, Any]:
        return {
            "name": self.name,
            "serverToolName": f"{prefix}{self.name}",
            "description": self.description,
            "inputSchema": self.to_input_schema(),
        }


class ToolSet(Protocol):
    def list_operations(self) -> list[OpDescriptor]: ...

    def invoke(self, op_name: str, args: Mapping[str, Any]) -> Any: ...


# ---------------------------------------------------------------------------
# Synchronizer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Binding:
    identity_id: str
    tools: ToolSet


class ToolRegistrySynchronizer:
    """Keeps at most one tool set, bound to the wallet it was built for."""

    def __init__(
        self,
        client_factory: Callable[[Identity], Any],
        tool_factory: Callable[[Any], ToolSet],
    ) -> None:
        self.client_factory = client_factory
        self.tool_factory = tool_factory
        self._binding: _Binding | None = None
        self._pending: dict[str, asyncio.Task[bool]] = {}
        self._target_id: str | None = None
        self.rebuild_count = 0

    @property
    def bound_identity_id(self) -> str | None:
        return self._binding.identity_id if self._binding else None

    def tools_for(self, identity_id: str) -> ToolSet | None:
        binding = self._binding
        if binding is None or binding.identity_id != identity_id:
            return None
        return binding.tools

    def clear(self) -> None:
        self._binding = None

    def _build(self, identity: Identity) -> ToolSet:
        try:
            client = self.client_factory(identity)
            return self.tool_factory(client)
        except Exception as exc:  # noqa: BLE001
            raise ToolSetConstructionError(f"{type(exc).__name__}: {exc}") from exc

    async def ensure_for(self, identity: Identity) -> bool:
        """Bind tools for ``identity``, joining a build already in flight for it."""
        if self.tools_for(identity.id) is not None:
            return True
        pending = self._pending.get(identity.id)
        if pending is not None:
            return await asyncio.shield(pending)
        return await self.force_rebuild(identity)

    async def force_rebuild(self, identity: Identity) -> bool:
        self.rebuild_count += 1
        self._target_id = identity.id
        task = asyncio.create_task(self._rebuild(identity, self.rebuild_count))
        self._pending[identity.id] = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._pending.get(identity.id) is task:
                del self._pending[identity.id]

    async def _rebuild(self, identity: Identity, generation: int) -> bool:
        logger.info(f"Initializing on-chain tools for wallet: {identity.name}")
        try:
            tools = await asyncio.to_thread(self._build, identity)
        except ToolSetConstructionError as exc:
            logger.error(f"Error initializing on-chain tools for {identity.name}: {exc}")
            if generation == self.rebuild_count:
                self._binding = None
            return False

        if identity.id != self._target_id:
            # A rebuild for another wallet started meanwhile; it owns the binding.
            logger.info(f"Discarding superseded on-chain tools for {identity.name}")
            return self.tools_for(identity.id) is not None
        if generation == self.rebuild_count or self.tools_for(identity.id) is None:
            self._binding = _Binding(identity_id=identity.id, tools=tools)
        logger.info(f"On-chain tools ready: {len(tools.list_operations())} operations")
        return True


# ---------------------------------------------------------------------------
# Default web3 tool set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenSpec:
    symbol: str
    name: str
    decimals: int
    contracts: dict[int, str] = field(default_factory=dict)


# Contract addresses keyed by chain id.
DEFAULT_TOKENS: tuple[TokenSpec, ...] = (
    TokenSpec(
        "USDC",
        "USD Coin",
        6,
        {
            50: "0x6a9b4cbf7ba131daeaf6b43ad7d24e066bb01654",
            51: "0x6a9b4cbf7ba131daeaf6b43ad7d24e066bb01654",
            1: "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
            42161: "0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
            137: "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174",
            10: "0x7F5c764cBc14f9669B88837ca1490cCa17c31607",
            84532: "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        },
    ),
    TokenSpec(
        "USDT",
        "Tether USD",
        6,
        {
            50: "0x48a0c6f2bc64f0acce5065b44b9b85af1b32c02f",
            51: "0x48a0c6f2bc64f0acce5065b44b9b85af1b32c02f",
        },
    ),
    TokenSpec(
        "WETH",
        "Wrapped Ether",
        18,
        {
            1: "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
            8453: "0x4200000000000000000000000000000000000006",
            42161: "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1",
            137: "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619",
            10: "0x4200000000000000000000000000000000000006",
            84532: "0x4200000000000000000000000000000000000006",
        },
    ),
    TokenSpec("DAI", "Dai Stablecoin", 18, {1: "0x6B175474E89094C44Da98b954EedeAC495271d0F"}),
    TokenSpec("USDbC", "USD Base Coin", 6, {8453: "0xd9aAEc86B65D86f6A7B5B1b0c42FFA531710b6CA"}),
    TokenSpec("cbETH", "Coinbase Wrapped Staked ETH", 18, {8453: "0x2Ae3F1Ec7F1F5012CFEab0185bfc7aa3cf0DEc22"}),
)

_S, _N = ParamType.STRING, ParamType.NUMBER

WEB3_OPERATIONS: tuple[OpDescriptor, ...] = (
    OpDescriptor("get_address", "Get the address of the active wallet"),
    OpDescriptor("get_chain", "Get the chain the active wallet is connected to"),
    OpDescriptor(
        "get_balance",
        "Get the native balance of an address",
        (OpParam("address", _S, "Address to check (defaults to the active wallet)"),),
    ),
    OpDescriptor(
        "get_token_info_by_symbol",
        "Get the contract address and decimals of a configured token",
        (OpParam("symbol", _S, "Token symbol, e.g. USDC", required=True),),
    ),
    OpDescriptor(
        "get_token_balance",
        "Get the balance of a configured token for an address",
        (
            OpParam("symbol", _S, "Token symbol", required=True),
            OpParam("wallet", _S, "Address to check (defaults to the active wallet)"),
        ),
    ),
    OpDescriptor(
        "transfer",
        "Transfer a configured token from the active wallet",
        (
            OpParam("symbol", _S, "Token symbol", required=True),
            OpParam("to", _S, "Recipient address", required=True),
            OpParam("amount", _N, "Amount in token units", required=True),
        ),
    ),
    OpDescriptor(
        "approve",
        "Approve a spender for a configured token",
        (
            OpParam("symbol", _S, "Token symbol", required=True),
            OpParam("spender", _S, "Spender address", required=True),
            OpParam("amount", _N, "Amount in token units", required=True),
        ),
    ),
    OpDescriptor(
        "get_token_allowance",
        "Get the allowance granted by the active wallet to a spender",
        (
            OpParam("symbol", _S, "Token symbol", required=True),
            OpParam("spender", _S, "Spender address", required=True),
        ),
    ),
)


class Web3ToolSet:
    """ERC-20 and native-token operations signed by one wallet."""

    def __init__(self, client: SignerClient, tokens: tuple[TokenSpec, ...] = DEFAULT_TOKENS) -> None:
        self.client = client
        self.tokens = {t.symbol.upper(): t for t in tokens if client.chain.chain_id in t.contracts}
        self._ops = {op.name: op for op in WEB3_OPERATIONS}

    @property
    def address(self) -> str:
        return self.client.account.address

    def list_operations(self) -> list[OpDescriptor]:
        return list(self._ops.values())

    def invoke(self, op_name: str, args: Mapping[str, Any]) -> Any:
        op = self._ops.get(op_name)
        if op is None:
            raise ValueError(f"Unknown on-chain tool: {op_name}")
        args = op.validate_args(args)
        return getattr(self, f"_op_{op_name}")(args)

    def _token(self, symbol: Any) -> tuple[TokenSpec, Any]:
        token = self.tokens.get(str(symbol or "").upper())
        if token is None:
            raise ValueError(f"Unknown token: {symbol}. Available: {sorted(self.tokens)}")
        address = Web3.to_checksum_address(token.contracts[self.client.chain.chain_id])
        return token, self.client.w3.eth.contract(address=address, abi=ERC20_ABI)

    def _send(self, fn: Any) -> str:
        w3, account = self.client.w3, self.client.account
        tx = fn.build_transaction({
            "from": account.address,
            "nonce": w3.eth.get_transaction_count(account.address),
            "chainId": self.client.chain.chain_id,
            "gasPrice": w3.eth.gas_price,
        })
        signed = account.sign_transaction(tx)
        tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
        return w3.to_hex(tx_hash)

    def _op_get_address(self, args: dict[str, Any]) -> str:
        return self.address

    def _op_get_chain(self, args: dict[str, Any]) -> dict[str, Any]:
        chain = self.client.chain
        return {"type": "evm", "id": chain.chain_id, "name": chain.name}

    def _op_get_balance(self, args: dict[str, Any]) -> dict[str, Any]:
        address = ensure_address(args.get("address") or self.address)
        wei = self.client.w3.eth.get_balance(address)
        return {"address": address, "balance": format_ether(wei), "symbol": self.client.chain.native_symbol}

    def _op_get_token_info_by_symbol(self, args: dict[str, Any]) -> dict[str, Any]:
        token, contract = self._token(args["symbol"])
        return {
            "symbol": token.symbol,
            "name": token.name,
            "decimals": token.decimals,
            "contractAddress": contract.address,
        }

    def _op_get_token_balance(self, args: dict[str, Any]) -> dict[str, Any]:
        token, contract = self._token(args["symbol"])
        wallet = ensure_address(args.get("wallet") or self.address)
        raw = contract.functions.balanceOf(wallet).call()
        return {"wallet": wallet, "symbol": token.symbol, "balance": format_units(raw, token.decimals)}

    def _op_transfer(self, args: dict[str, Any]) -> dict[str, Any]:
        token, contract = self._token(args["symbol"])
        fn = contract.functions.transfer(ensure_address(args["to"]), parse_units(args["amount"], token.decimals))
        return {"transactionHash": self._send(fn), "symbol": token.symbol, "amount": str(args["amount"])}

    def _op_approve(self, args: dict[str, Any]) -> dict[str, Any]:
        token, contract = self._token(args["symbol"])
        fn = contract.functions.approve(ensure_address(args["spender"]), parse_units(args["amount"], token.decimals))
        return {"transactionHash": self._send(fn), "symbol": token.symbol}

    def _op_get_token_allowance(self, args: dict[str, Any]) -> dict[str, Any]:
        token, contract = self._token(args["symbol"])
        raw = contract.functions.allowance(self.address, ensure_address(args["spender"])).call()
        return {"symbol": token.symbol, "allowance": format_units(raw, token.decimals)}


def build_web3_tool_set(client: SignerClient) -> Web3ToolSet:
    """Connect-check the client and build the default tool set for it."""
    if not client.w3.is_connected():
        raise ConnectionError(f"Cannot reach {client.chain.name} RPC")
    remote_chain_id = client.w3.eth.chain_id
    if remote_chain_id != client.chain.chain_id:
        raise ValueError(
            f"RPC chain id {remote_chain_id} does not match {client.chain.name} ({client.chain.chain_id})"
        )
    return Web3ToolSet(client)
