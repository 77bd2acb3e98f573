"""
XDC network access for the wallet MCP server.

Implements:
- Chain definitions for XDC mainnet, the Apothem testnet and other EVM networks
- Environment-driven configuration (network, RPC override, timeouts)
- Token contract ABIs (ERC-20, ERC-721, ERC-721A, ERC-6960)
- A web3 client for balances, contract reads/writes, transfers and receipts
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import TransactionNotFound
from web3.middleware import ExtraDataToPOAMiddleware

from wallet_identities import ChainOperationError, Identity

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Chains
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    """An EVM network the server can target."""

    chain_id: int
    name: str
    network: str
    native_symbol: str
    rpc_url: str
    explorer_url: str

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_hash}"


XDC_MAINNET = ChainConfig(
    chain_id=50,
    name="XDC Network",
    network="xdc",
    native_symbol="XDC",
    rpc_url="https://rpc.xinfin.network",
    explorer_url="https://xdc.network",
)

XDC_TESTNET = ChainConfig(
    chain_id=51,
    name="XDC Apothem Testnet",
    network="xdc-testnet",
    native_symbol="TXDC",
    rpc_url="https://erpc.apothem.network",
    explorer_url="https://testnet.xdcscan.com",
)


ETHEREUM = ChainConfig(
    chain_id=1,
    name="Ethereum",
    network="ethereum",
    native_symbol="ETH",
    rpc_url="https://cloudflare-eth.com",
    explorer_url="https://etherscan.io",
)

BASE = ChainConfig(
    chain_id=8453,
    name="Base",
    network="base",
    native_symbol="ETH",
    rpc_url="https://mainnet.base.org",
    explorer_url="https://basescan.org",
)

ARBITRUM = ChainConfig(
    chain_id=42161,
    name="Arbitrum One",
    network="arbitrum",
    native_symbol="ETH",
    rpc_url="https://arb1.arbitrum.io/rpc",
    explorer_url="https://arbiscan.io",
)

POLYGON = ChainConfig(
    chain_id=137,
    name="Polygon",
    network="polygon",
    native_symbol="POL",
    rpc_url="https://polygon-rpc.com",
    explorer_url="https://polygonscan.com",
)

OPTIMISM = ChainConfig(
    chain_id=10,
    name="OP Mainnet",
    network="optimism",
    native_symbol="ETH",
    rpc_url="https://mainnet.optimism.io",
    explorer_url="https://optimistic.etherscan.io",
)

BASE_SEPOLIA = ChainConfig(
    chain_id=84532,
    name="Base Sepolia",
    network="base-sepolia",
    native_symbol="ETH",
    rpc_url="https://sepolia.base.org",
    explorer_url="https://sepolia.basescan.org",
)

# "mainnet"/"testnet" select XDC; the rest are the EVM networks served alongside it.
CHAINS: dict[str, ChainConfig] = {
    "mainnet": XDC_MAINNET,
    "testnet": XDC_TESTNET,
    "ethereum": ETHEREUM,
    "base": BASE,
    "arbitrum": ARBITRUM,
    "polygon": POLYGON,
    "optimism": OPTIMISM,
    "base-sepolia": BASE_SEPOLIA,
}


def get_chain_config(network: str) -> ChainConfig:
    network = (network or "testnet").lower()
    chain = CHAINS.get(network)
    if chain is None:
        raise ValueError(f"Invalid network: {network}. Use one of: {', '.join(CHAINS)}.")
    return chain


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {key}={raw!r}, using {default}")
        return default
    if value <= 0:
        logger.warning(f"{key} must be positive, using {default}")
        return default
    return value


@dataclass
class XDCConfig:
    """
    Configuration for the XDC wallet server.

    Values are sourced from environment variables or a .env file.

    - XDC_NETWORK: a key of CHAINS, e.g. "mainnet", "testnet", "base"
      (defaults to "testnet").
    - RPC_PROVIDER_URL: optional RPC endpoint used instead of the chain default.
    - XDC_RPC_TIMEOUT: HTTP timeout in seconds for RPC calls (default 30).
    - XDC_RECEIPT_TIMEOUT: seconds to wait for a transaction receipt (default 120).
    - XDC_WALLET_LOG_LEVEL: logging level name (default INFO).
    """

    network: str = "testnet"
    rpc_url_override: str | None = None
    rpc_timeout: int = 30
    receipt_timeout: int = 120
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> XDCConfig:
        env = os.environ if env is None else env
        network = (env.get("XDC_NETWORK") or "testnet").strip().lower()
        if network not in CHAINS:
            logger.warning(f"Unknown XDC_NETWORK '{network}', using testnet")
            network = "testnet"
        return cls(
            network=network,
            rpc_url_override=(env.get("RPC_PROVIDER_URL") or "").strip() or None,
            rpc_timeout=_env_int(env, "XDC_RPC_TIMEOUT", 30),
            receipt_timeout=_env_int(env, "XDC_RECEIPT_TIMEOUT", 120),
            log_level=(env.get("XDC_WALLET_LOG_LEVEL") or "INFO").upper(),
        )

    def rpc_url_for(self, chain: ChainConfig) -> str:
        return self.rpc_url_override or chain.rpc_url


# ---------------------------------------------------------------------------
# ABIs
# ---------------------------------------------------------------------------


def _fn(name: str, inputs: list[tuple[str, str]], outputs: list[str], mutability: str) -> dict[str, Any]:
    return {
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "name": name,
        "outputs": [{"name": "", "type": t} for t in outputs],
        "stateMutability": mutability,
        "type": "function",
    }


ERC20_ABI = [
    _fn("balanceOf", [("_owner", "address")], ["uint256"], "view"),
    _fn("transfer", [("_to", "address"), ("_value", "uint256")], ["bool"], "nonpayable"),
    _fn("name", [], ["string"], "view"),
    _fn("symbol", [], ["string"], "view"),
    _fn("decimals", [], ["uint8"], "view"),
    _fn("totalSupply", [], ["uint256"], "view"),
    _fn("approve", [("_spender", "address"), ("_value", "uint256")], ["bool"], "nonpayable"),
    _fn("allowance", [("_owner", "address"), ("_spender", "address")], ["uint256"], "view"),
]

ERC721_ABI = [
    _fn("mint", [("to", "address"), ("tokenId", "uint256")], [], "nonpayable"),
    _fn("safeMint", [("to", "address"), ("uri", "string")], [], "nonpayable"),
    _fn("balanceOf", [("owner", "address")], ["uint256"], "view"),
    _fn("ownerOf", [("tokenId", "uint256")], ["address"], "view"),
    _fn("tokenURI", [("tokenId", "uint256")], ["string"], "view"),
    _fn("totalSupply", [], ["uint256"], "view"),
    _fn("transferFrom", [("from", "address"), ("to", "address"), ("tokenId", "uint256")], [], "nonpayable"),
]

# ERC-721A batch mint takes a quantity in the uint256 slot.
ERC721A_ABI = [
    _fn("mint", [("to", "address"), ("quantity", "uint256")], [], "payable"),
    _fn("safeMint", [("to", "address"), ("uri", "string")], [], "nonpayable"),
    _fn("balanceOf", [("owner", "address")], ["uint256"], "view"),
    _fn("ownerOf", [("tokenId", "uint256")], ["address"], "view"),
    _fn("tokenURI", [("tokenId", "uint256")], ["string"], "view"),
    _fn("totalSupply", [], ["uint256"], "view"),
]

# ERC-6960 dual-layer token (Polytrade Finance)
ERC6960_ABI = [
    _fn(
        "mint",
        [("to", "address"), ("mainId", "uint256"), ("subId", "uint256"), ("amount", "uint256"), ("data", "bytes")],
        [],
        "nonpayable",
    ),
    _fn(
        "mintBatch",
        [
            ("to", "address"),
            ("mainIds", "uint256[]"),
            ("subIds", "uint256[]"),
            ("amounts", "uint256[]"),
            ("data", "bytes"),
        ],
        [],
        "nonpayable",
    ),
    _fn("balanceOf", [("account", "address"), ("mainId", "uint256"), ("subId", "uint256")], ["uint256"], "view"),
    _fn("uri", [("mainId", "uint256"), ("subId", "uint256")], ["string"], "view"),
    _fn(
        "safeTransferFrom",
        [
            ("from", "address"),
            ("to", "address"),
            ("mainId", "uint256"),
            ("subId", "uint256"),
            ("amount", "uint256"),
            ("data", "bytes"),
        ],
        [],
        "nonpayable",
    ),
    _fn("setApprovalForAll", [("operator", "address"), ("approved", "bool")], [], "nonpayable"),
]


# ---------------------------------------------------------------------------
# Unit helpers
# ---------------------------------------------------------------------------


def ensure_address(address: str) -> str:
    address = (address or "").strip()
    if not address.startswith("0x"):
        raise ValueError(f"Invalid address format: {address}. Address must start with 0x")
    if not Web3.is_address(address):
        raise ValueError(f"Invalid address: {address}")
    return Web3.to_checksum_address(address)


def parse_units(amount: Any, decimals: int, allow_zero: bool = False) -> int:
    """
    Convert a human amount to integer base units.

    Amounts must be finite and carry no more fractional digits than
    ``decimals``; anything finer would be truncated on chain.
    """
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValueError(f"Invalid amount: {amount}. Must be a number.") from exc
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount}. Must be a finite number.")
    if value < 0 or (value == 0 and not allow_zero):
        bound = "zero or more" if allow_zero else "greater than zero"
        raise ValueError(f"Invalid amount: {amount}. Must be {bound}.")
    if value.normalize().as_tuple().exponent < -decimals:
        raise ValueError(f"Invalid amount: {amount}. At most {decimals} decimal places allowed.")
    return int(value.scaleb(decimals))


def format_units(value: int, decimals: int) -> str:
    return format((Decimal(value) / (Decimal(10) ** decimals)).normalize(), "f")


def parse_ether(amount: Any, allow_zero: bool = False) -> int:
    return parse_units(amount, 18, allow_zero=allow_zero)


def format_ether(value: int) -> str:
    return format_units(value, 18)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Receipt:
    transaction_hash: str
    status: str
    block_number: int
    gas_used: int
    from_address: str
    to_address: str | None
    block_hash: str | None = None
    contract_address: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactionHash": self.transaction_hash,
            "status": self.status,
            "blockNumber": str(self.block_number),
            "gasUsed": str(self.gas_used),
            "from": self.from_address,
            "to": self.to_address,
        }


@dataclass(frozen=True)
class SignerClient:
    """A web3 connection bound to one wallet's signing key."""

    w3: Web3
    account: LocalAccount
    chain: ChainConfig


def _hex(value: Any) -> str:
    text = value.hex() if hasattr(value, "hex") else str(value)
    return text if text.startswith("0x") else "0x" + text


def _receipt_from(raw: Mapping[str, Any]) -> Receipt:
    return Receipt(
        transaction_hash=_hex(raw["transactionHash"]),
        status="Success" if raw.get("status") == 1 else "Failed",
        block_number=int(raw.get("blockNumber") or 0),
        gas_used=int(raw.get("gasUsed") or 0),
        from_address=raw.get("from", ""),
        to_address=raw.get("to"),
        block_hash=_hex(raw["blockHash"]) if raw.get("blockHash") else None,
        contract_address=raw.get("contractAddress"),
    )


class ChainClient:
    """Blocking web3 client for one XDC network. Call from a worker thread."""

    def __init__(self, chain: ChainConfig, rpc_url: str | None = None, timeout: int = 30,
                 receipt_timeout: int = 120) -> None:
        self.chain = chain
        self.rpc_url = rpc_url or chain.rpc_url
        self.receipt_timeout = receipt_timeout
        self.w3 = Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": timeout}))
        # XDC blocks carry extra data like other POA chains
        self.w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

    @classmethod
    def for_network(cls, cfg: XDCConfig, network: str) -> ChainClient:
        chain = get_chain_config(network)
        return cls(
            chain,
            rpc_url=cfg.rpc_url_for(chain),
            timeout=cfg.rpc_timeout,
            receipt_timeout=cfg.receipt_timeout,
        )

    def _call(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except ChainOperationError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ChainOperationError(f"{label} failed: {exc}") from exc

    def signer_client(self, identity: Identity) -> SignerClient:
        account: LocalAccount = Account.from_key(identity.private_key)
        return SignerClient(w3=self.w3, account=account, chain=self.chain)

    # -- Reads --

    def get_balance(self, address: str) -> int:
        return self._call("Balance lookup", self.w3.eth.get_balance, ensure_address(address))

    def get_block_number(self) -> int:
        return self._call("Block number lookup", lambda: self.w3.eth.block_number)

    def get_gas_price(self) -> int:
        return self._call("Gas price lookup", lambda: self.w3.eth.gas_price)

    def estimate_gas(self, to: str, value_wei: int = 0, data: str | None = None) -> int:
        tx: dict[str, Any] = {"to": ensure_address(to), "value": value_wei}
        if data:
            tx["data"] = data
        return self._call("Gas estimate", self.w3.eth.estimate_gas, tx)

    def call_contract(self, address: str, abi: list[dict[str, Any]], fn_name: str,
                      args: list[Any] | None = None) -> Any:
        contract = self.w3.eth.contract(address=ensure_address(address), abi=abi)
        fn = contract.get_function_by_name(fn_name)(*(args or []))
        return self._call(f"Read {fn_name}", fn.call)

    # -- Writes --

    def _fill_fees(self, tx: dict[str, Any]) -> None:
        try:
            latest = self.w3.eth.get_block("latest")
            base_fee = latest.get("baseFeePerGas")
        except Exception:  # noqa: BLE001
            base_fee = None
        if base_fee is not None:
            max_priority = Web3.to_wei(1.5, "gwei")
            tx["maxFeePerGas"] = base_fee * 2 + max_priority
            tx["maxPriorityFeePerGas"] = max_priority
        else:
            tx["gasPrice"] = self.w3.eth.gas_price

    def _sign_and_send(self, identity: Identity, tx: dict[str, Any]) -> str:
        signed = self.w3.eth.account.sign_transaction(tx, identity.private_key)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info(f"Broadcast {_hex(tx_hash)} from {identity.address} on {self.chain.name}")
        return _hex(tx_hash)

    def send_value(self, identity: Identity, to: str, amount_wei: int, gas: int | None = None) -> str:
        def _send() -> str:
            tx: dict[str, Any] = {
                "from": identity.address,
                "to": ensure_address(to),
                "value": amount_wei,
                "nonce": self.w3.eth.get_transaction_count(identity.address),
                "chainId": self.chain.chain_id,
            }
            self._fill_fees(tx)
            tx["gas"] = gas or self.w3.eth.estimate_gas(tx)
            return self._sign_and_send(identity, tx)

        return self._call("Native transfer", _send)

    def write_contract(self, identity: Identity, address: str, abi: list[dict[str, Any]], fn_name: str,
                       args: list[Any], gas: int | None = None, value_wei: int = 0) -> str:
        def _write() -> str:
            contract = self.w3.eth.contract(address=ensure_address(address), abi=abi)
            base: dict[str, Any] = {
                "from": identity.address,
                "value": value_wei,
                "nonce": self.w3.eth.get_transaction_count(identity.address),
                "chainId": self.chain.chain_id,
            }
            self._fill_fees(base)
            if gas:
                base["gas"] = gas
            tx = contract.get_function_by_name(fn_name)(*args).build_transaction(base)
            return self._sign_and_send(identity, tx)

        return self._call(f"Write {fn_name}", _write)

    def wait_for_receipt(self, tx_hash: str) -> Receipt:
        raw = self._call(
            "Receipt wait",
            self.w3.eth.wait_for_transaction_receipt,
            tx_hash,
            timeout=self.receipt_timeout,
        )
        return _receipt_from(raw)

    def get_transaction_status(self, tx_hash: str) -> dict[str, Any]:
        try:
            receipt = _receipt_from(self.w3.eth.get_transaction_receipt(tx_hash))
            return {
                "transactionHash": tx_hash,
                "status": receipt.status,
                "blockNumber": str(receipt.block_number),
                "blockHash": receipt.block_hash,
                "gasUsed": str(receipt.gas_used),
                "from": receipt.from_address,
                "to": receipt.to_address,
                "contractAddress": receipt.contract_address,
            }
        except TransactionNotFound:
            pass
        except Exception as exc:  # noqa: BLE001
            raise ChainOperationError(f"Receipt lookup failed: {exc}") from exc

        try:
            tx = self.w3.eth.get_transaction(tx_hash)
        except TransactionNotFound as exc:
            raise ChainOperationError(f"Transaction not found: {tx_hash}") from exc
        except Exception as exc:  # noqa: BLE001
            raise ChainOperationError(f"Transaction lookup failed: {exc}") from exc
        return {
            "transactionHash": tx_hash,
            "status": "Pending",
            "blockNumber": str(tx.get("blockNumber")) if tx.get("blockNumber") else "Pending",
            "from": tx.get("from"),
            "to": tx.get("to"),
            "value": f"{format_ether(tx.get('value', 0))} {self.chain.native_symbol}",
            "note": "Transaction is pending confirmation",
        }
