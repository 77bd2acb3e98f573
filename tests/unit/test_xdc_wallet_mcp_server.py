import asyncio
import json
import sys
import time
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(REPO_ROOT))

import xdc_wallet_mcp_server as server  # noqa: E402
from eth_account import Account  # noqa: E402
from onchain_tools import OpDescriptor, OpParam, ParamType, ToolRegistrySynchronizer  # noqa: E402
from wallet_identities import ChainOperationError, IdentityRegistry  # noqa: E402
from xdc_chain import XDC_TESTNET, Receipt, XDCConfig  # noqa: E402


SELLER_KEY = "0x" + "11" * 32
BUYER_KEY = "0x" + "22" * 32
CM_SELLER_KEY = "0x" + "33" * 32
RECIPIENT = Account.from_key("0x" + "44" * 32).address
CONTRACT = Account.from_key("0x" + "55" * 32).address
TX_HASH = "0x" + "ab" * 32


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeChain:
    def __init__(self):
        self.chain = XDC_TESTNET
        self.rpc_url = XDC_TESTNET.rpc_url
        self.writes = []
        self.sends = []
        self.reads = {}

    def get_balance(self, address):
        return 5 * 10**18

    def get_block_number(self):
        return 1234

    def get_gas_price(self):
        return 250_000_000

    def estimate_gas(self, to, value_wei=0, data=None):
        return 21000

    def call_contract(self, address, abi, fn_name, args=None):
        return self.reads[fn_name]

    def write_contract(self, identity, address, abi, fn_name, args, gas=None, value_wei=0):
        self.writes.append({"from": identity.address, "address": address, "fn": fn_name, "args": args, "gas": gas})
        return TX_HASH

    def send_value(self, identity, to, amount_wei, gas=None):
        self.sends.append({"from": identity.address, "to": to, "amount_wei": amount_wei, "gas": gas})
        return TX_HASH

    def wait_for_receipt(self, tx_hash):
        return Receipt(
            transaction_hash=tx_hash,
            status="Success",
            block_number=99,
            gas_used=21000,
            from_address="0xfrom",
            to_address="0xto",
        )

    def get_transaction_status(self, tx_hash):
        raise ChainOperationError(f"Transaction not found: {tx_hash}")


class FakeToolSet:
    def __init__(self, identity_id):
        self.identity_id = identity_id

    def list_operations(self):
        return [
            OpDescriptor("get_address", "Get the address of the active wallet"),
            OpDescriptor(
                "get_token_balance",
                "Get a token balance",
                (OpParam("symbol", ParamType.STRING, required=True),),
            ),
        ]

    def invoke(self, op_name, args):
        return {"op": op_name, "wallet": self.identity_id, "args": dict(args)}


def _make_ctx(env, fail_tools=False):
    chain = FakeChain()

    def client_factory(identity):
        if fail_tools:
            raise ConnectionError("rpc down")
        return identity.id

    ctx = server.WalletContext(
        XDCConfig(),
        IdentityRegistry.from_env(env),
        synchronizer=ToolRegistrySynchronizer(client_factory, FakeToolSet),
        chain_factory=lambda cfg, network: chain,
    )
    asyncio.run(ctx.startup())
    return ctx, chain


def _full_env():
    return {
        "CAT_MM_SELLER_WALLET_PRIVATE_KEY": SELLER_KEY,
        "CAT_MM_BUYER_WALLET_PRIVATE_KEY": BUYER_KEY,
        "CM_SELLER_WALLET_PRIVATE_KEY": CM_SELLER_KEY,
    }


def _call(ctx, name, arguments=None):
    response = asyncio.run(server.dispatch(ctx, name, arguments))
    return json.loads(response[0].text)


# ---------------------------------------------------------------------------
# Tool listing
# ---------------------------------------------------------------------------


def test_list_tools_includes_static_and_onchain_tools():
    ctx, _ = _make_ctx(_full_env())
    names = {tool.name for tool in server.list_tool_definitions(ctx)}

    for expected in (
        "list_wallets",
        "get_current_wallet",
        "switch_to_seller",
        "switch_to_buyer",
        "switch_to_financier",
        "switch_wallet",
        "switch_wallet_by_id",
        "restore_last_wallet",
        "get_wallet_info",
        "get_native_balance",
        "get_network_info",
        "estimate_gas",
        "get_transaction_status",
        "send_native_token",
        "get_erc20_balance",
        "get_token_info",
        "send_erc20_token",
        "mint_nft_advanced",
        "mint_nft_with_active_wallet",
        "get_nft_info",
        "mint_erc6960_batch",
        "get_erc6960_balance",
        "transfer_erc6960",
        "get_erc6960_uri",
        "list_available_onchain_tools",
        "get_onchain_tool_info",
        "onchain_get_address",
        "onchain_get_token_balance",
    ):
        assert expected in names


def test_onchain_tool_schema_is_rendered():
    ctx, _ = _make_ctx(_full_env())
    tools = {tool.name: tool for tool in server.list_tool_definitions(ctx)}

    assert tools["onchain_get_token_balance"].inputSchema["required"] == ["symbol"]
    assert "input" in tools["onchain_get_address"].inputSchema["properties"]


def test_list_tools_without_tool_set_only_static():
    ctx, _ = _make_ctx(_full_env(), fail_tools=True)
    names = [tool.name for tool in server.list_tool_definitions(ctx)]
    assert len(names) == len(server.STATIC_TOOLS)


def test_create_server_returns_named_server():
    ctx, _ = _make_ctx(_full_env())
    app = server.create_server(ctx)
    assert app.name == "xdc_wallet"


def test_initialization_options_advertise_tool_list_changes():
    ctx, _ = _make_ctx(_full_env())
    options = server.initialization_options(server.create_server(ctx))
    assert options.server_name == "xdc_wallet"
    assert options.capabilities.tools.listChanged is True


def test_network_property_offers_every_chain():
    ctx, _ = _make_ctx({})
    tools = {tool.name: tool for tool in server.list_tool_definitions(ctx)}
    network = tools["get_network_info"].inputSchema["properties"]["network"]
    assert network["enum"] == list(server.CHAINS)
    assert {"mainnet", "testnet", "base", "base-sepolia"} <= set(network["enum"])


# ---------------------------------------------------------------------------
# Wallet management
# ---------------------------------------------------------------------------


def test_startup_selects_priority_wallet_and_builds_tools():
    ctx, _ = _make_ctx(_full_env())
    payload = _call(ctx, "get_current_wallet")

    assert payload["success"] is True
    assert payload["id"] == "catmm_seller"
    assert payload["address"] == Account.from_key(SELLER_KEY).address
    assert payload["onchainTools"] is True
    assert payload["onchainToolsWalletMatch"] is True
    assert "private_key" not in payload
    assert ctx.synchronizer.rebuild_count == 1


def test_list_wallets():
    ctx, _ = _make_ctx(_full_env())
    payload = _call(ctx, "list_wallets")

    assert payload["total"] == 3
    assert payload["currentWallet"] == "catmm_seller"
    assert [w["id"] for w in payload["wallets"]] == ["catmm_seller", "catmm_buyer", "cm_seller"]
    assert [w["isActive"] for w in payload["wallets"]] == [True, False, False]
    assert payload["byProvider"] == {"metamask": 2, "crossmint": 1}
    assert SELLER_KEY not in json.dumps(payload)


def test_no_wallets_every_identity_tool_reports_no_active_wallet():
    ctx, chain = _make_ctx({})

    for name, args in (
        ("get_current_wallet", {}),
        ("get_wallet_info", {}),
        ("send_native_token", {"to": RECIPIENT, "amount": "1"}),
        ("mint_nft_with_active_wallet", {"contract_address": CONTRACT, "to": RECIPIENT, "token_uri": "ipfs://x"}),
        ("onchain_get_address", {}),
        ("list_available_onchain_tools", {}),
    ):
        payload = _call(ctx, name, args)
        assert payload["success"] is False, name
        assert payload["error"] == "No active wallet"
        assert "instruction" in payload

    assert chain.sends == []
    assert chain.writes == []
    assert ctx.synchronizer.rebuild_count == 0


def test_switch_to_seller_falls_back_to_crossmint():
    ctx, _ = _make_ctx({"CM_SELLER_WALLET_PRIVATE_KEY": CM_SELLER_KEY, "CAT_MM_BUYER_WALLET_PRIVATE_KEY": BUYER_KEY})
    before = ctx.synchronizer.rebuild_count

    payload = _call(ctx, "switch_to_seller", {"provider": "metamask"})

    assert payload["success"] is True
    assert payload["wallet"]["id"] == "cm_seller"
    assert payload["requestedProvider"] == "metamask"
    assert payload["providerHonored"] is False
    assert "metamask not available, using crossmint" in payload["message"]
    assert payload["onchainToolsReinitialized"] is True
    assert ctx.synchronizer.rebuild_count == before + 1
    assert ctx.synchronizer.bound_identity_id == "cm_seller"


def test_switch_rebuilds_exactly_once_even_for_same_wallet():
    ctx, _ = _make_ctx(_full_env())
    assert ctx.synchronizer.rebuild_count == 1

    _call(ctx, "switch_to_buyer")
    assert ctx.synchronizer.rebuild_count == 2
    assert ctx.synchronizer.bound_identity_id == "catmm_buyer"

    _call(ctx, "switch_to_buyer")
    assert ctx.synchronizer.rebuild_count == 3


def test_switch_wallet_by_role_and_provider():
    ctx, _ = _make_ctx(_full_env())
    payload = _call(ctx, "switch_wallet", {"role": "seller", "provider": "crossmint"})

    assert payload["wallet"]["id"] == "cm_seller"
    assert payload["providerHonored"] is True


def test_switch_wallet_by_id():
    ctx, _ = _make_ctx(_full_env())
    payload = _call(ctx, "switch_wallet_by_id", {"wallet_id": "cm_seller"})

    assert payload["success"] is True
    assert payload["wallet"]["id"] == "cm_seller"
    assert payload["onchainToolsReinitialized"] is True
    assert ctx.synchronizer.rebuild_count == 2
    assert ctx.synchronizer.bound_identity_id == "cm_seller"


def test_switch_wallet_by_unknown_id_reports_available_wallets():
    ctx, _ = _make_ctx(_full_env())
    payload = _call(ctx, "switch_wallet_by_id", {"wallet_id": "cvc_buyer"})

    assert payload["success"] is False
    assert payload["error"] == "No wallet with id 'cvc_buyer'"
    assert [w["id"] for w in payload["availableWallets"]] == ["catmm_seller", "catmm_buyer", "cm_seller"]
    assert ctx.session.current().id == "catmm_seller"
    assert ctx.synchronizer.rebuild_count == 1


def test_switch_to_missing_role_reports_available_wallets():
    ctx, _ = _make_ctx(_full_env())
    before = ctx.session.state
    payload = _call(ctx, "switch_to_financier")

    assert payload["success"] is False
    assert payload["error"] == "No financier wallet found"
    assert [w["id"] for w in payload["availableWallets"]] == ["catmm_seller", "catmm_buyer", "cm_seller"]
    assert "CAT_MM_FINANCIER_WALLET_PRIVATE_KEY" in payload["instruction"]
    assert ctx.session.state is before
    assert ctx.synchronizer.rebuild_count == 1


def test_switch_wallet_requires_role():
    ctx, _ = _make_ctx(_full_env())
    payload = _call(ctx, "switch_wallet", {})
    assert payload["success"] is False
    assert "role" in payload["error"]


def test_identity_tool_restores_last_wallet():
    ctx, _ = _make_ctx(_full_env())
    _call(ctx, "switch_to_buyer")
    ctx.session.clear()

    payload = _call(ctx, "get_current_wallet")
    assert payload["success"] is True
    assert payload["id"] == "catmm_buyer"


def test_restore_last_wallet_tool():
    ctx, _ = _make_ctx(_full_env())
    ctx.session.clear()

    payload = _call(ctx, "restore_last_wallet")
    assert payload["restored"] is True
    assert payload["wallet"]["id"] == "catmm_seller"


def test_get_wallet_info_includes_balance():
    ctx, _ = _make_ctx(_full_env())
    payload = _call(ctx, "get_wallet_info")

    assert payload["balance"] == "5 TXDC"
    assert payload["network"] == "XDC Apothem Testnet"
    assert payload["chainId"] == 51
    assert payload["readyForOperations"] is True


# ---------------------------------------------------------------------------
# Chain reads
# ---------------------------------------------------------------------------


def test_get_native_balance():
    ctx, _ = _make_ctx({})
    payload = _call(ctx, "get_native_balance", {"address": RECIPIENT.lower()})

    assert payload["address"] == RECIPIENT
    assert payload["balance"] == "5"
    assert payload["balance_wei"] == str(5 * 10**18)
    assert payload["symbol"] == "TXDC"


def test_get_native_balance_rejects_bad_address():
    ctx, _ = _make_ctx({})
    payload = _call(ctx, "get_native_balance", {"address": "xdc123"})
    assert payload["success"] is False
    assert "must start with 0x" in payload["error"]


def test_get_network_info():
    ctx, _ = _make_ctx({})
    payload = _call(ctx, "get_network_info", {"network": "testnet"})

    assert payload["chainId"] == 51
    assert payload["currentBlock"] == "1234"
    assert payload["gasPrice"] == "0.00000000025 TXDC"


def test_estimate_gas():
    ctx, _ = _make_ctx({})
    payload = _call(ctx, "estimate_gas", {"to": RECIPIENT, "value": "1"})

    assert payload["estimatedGas"] == "21000"
    assert payload["estimatedCost"] == "0.00000525 TXDC"


def test_estimate_gas_accepts_zero_value():
    ctx, _ = _make_ctx({})
    payload = _call(ctx, "estimate_gas", {"to": RECIPIENT, "value": "0"})

    assert payload["success"] is True
    assert payload["estimatedGas"] == "21000"


def test_estimate_gas_rejects_negative_value():
    ctx, _ = _make_ctx({})
    payload = _call(ctx, "estimate_gas", {"to": RECIPIENT, "value": "-1"})
    assert payload["success"] is False


def test_transaction_status_not_found_is_error():
    ctx, _ = _make_ctx({})
    payload = _call(ctx, "get_transaction_status", {"transaction_hash": TX_HASH})
    assert payload["success"] is False
    assert payload["error"] == f"Transaction not found: {TX_HASH}"


def test_get_token_info():
    ctx, chain = _make_ctx({})
    chain.reads = {"name": "USD Coin", "symbol": "USDC", "decimals": 6, "totalSupply": 12_500_000}
    payload = _call(ctx, "get_token_info", {"contract_address": CONTRACT})

    assert payload["name"] == "USD Coin"
    assert payload["totalSupply"] == "12.5"


def test_get_erc20_balance_defaults_to_active_wallet():
    ctx, chain = _make_ctx(_full_env())
    chain.reads = {"balanceOf": 3_000_000, "decimals": 6, "symbol": "USDC"}
    payload = _call(ctx, "get_erc20_balance", {"token_address": CONTRACT})

    assert payload["walletAddress"] == Account.from_key(SELLER_KEY).address
    assert payload["balance"] == "3"


# ---------------------------------------------------------------------------
# Transfers and minting
# ---------------------------------------------------------------------------


def test_send_native_token():
    ctx, chain = _make_ctx(_full_env())
    payload = _call(ctx, "send_native_token", {"to": RECIPIENT, "amount": "1.5", "gas_limit": "30000"})

    assert payload["success"] is True
    assert payload["transactionHash"] == TX_HASH
    assert payload["status"] == "Success"
    assert payload["explorerUrl"] == f"https://testnet.xdcscan.com/tx/{TX_HASH}"
    assert chain.sends == [
        {
            "from": Account.from_key(SELLER_KEY).address,
            "to": RECIPIENT,
            "amount_wei": 1_500_000_000_000_000_000,
            "gas": 30000,
        }
    ]


def test_send_native_token_rejects_non_positive_amount():
    ctx, chain = _make_ctx(_full_env())
    payload = _call(ctx, "send_native_token", {"to": RECIPIENT, "amount": "0"})
    assert payload["success"] is False
    assert chain.sends == []


def test_send_erc20_token_scales_by_decimals():
    ctx, chain = _make_ctx(_full_env())
    chain.reads = {"decimals": 6, "symbol": "USDT"}
    payload = _call(ctx, "send_erc20_token", {"token_address": CONTRACT, "to": RECIPIENT, "amount": "2.5"})

    assert payload["amount"] == "2.5 USDT"
    assert chain.writes[0]["fn"] == "transfer"
    assert chain.writes[0]["args"] == [RECIPIENT, 2_500_000]


def test_send_erc20_token_rejects_amount_below_token_precision():
    ctx, chain = _make_ctx(_full_env())
    chain.reads = {"decimals": 6, "symbol": "USDC"}
    payload = _call(ctx, "send_erc20_token", {"token_address": CONTRACT, "to": RECIPIENT, "amount": "0.0000001"})

    assert payload["success"] is False
    assert "At most 6 decimal places" in payload["error"]
    assert chain.writes == []


def test_mint_nft_advanced_erc721_with_uri():
    ctx, chain = _make_ctx(_full_env())
    payload = _call(
        ctx,
        "mint_nft_advanced",
        {"contract_address": CONTRACT, "to": RECIPIENT, "token_uri": "ipfs://meta"},
    )

    assert payload["success"] is True
    assert payload["operation"] == "Mint ERC-721 NFT with URI"
    assert chain.writes[0]["fn"] == "safeMint"
    assert chain.writes[0]["args"] == [RECIPIENT, "ipfs://meta"]


def test_mint_nft_advanced_erc721a_quantity():
    ctx, chain = _make_ctx(_full_env())
    _call(
        ctx,
        "mint_nft_advanced",
        {"contract_address": CONTRACT, "to": RECIPIENT, "standard": "erc721a", "quantity": "3"},
    )
    assert chain.writes[0]["fn"] == "mint"
    assert chain.writes[0]["args"] == [RECIPIENT, 3]


def test_mint_nft_advanced_erc6960_requires_all_ids():
    ctx, chain = _make_ctx(_full_env())
    payload = _call(
        ctx,
        "mint_nft_advanced",
        {"contract_address": CONTRACT, "to": RECIPIENT, "standard": "erc6960", "main_id": "1"},
    )
    assert payload["success"] is False
    assert payload["error"] == "ERC-6960 requires main_id, sub_id, and amount"
    assert chain.writes == []


def test_mint_nft_advanced_rejects_unknown_standard():
    ctx, _ = _make_ctx(_full_env())
    payload = _call(
        ctx,
        "mint_nft_advanced",
        {"contract_address": CONTRACT, "to": RECIPIENT, "standard": "erc1155", "token_id": "1"},
    )
    assert payload["success"] is False
    assert "Unsupported standard" in payload["error"]


def test_mint_nft_with_active_wallet_requires_uri_or_id():
    ctx, _ = _make_ctx(_full_env())
    payload = _call(ctx, "mint_nft_with_active_wallet", {"contract_address": CONTRACT, "to": RECIPIENT})
    assert payload["error"] == "Either token_uri or token_id required"


def test_mint_erc6960_batch():
    ctx, chain = _make_ctx(_full_env())
    payload = _call(
        ctx,
        "mint_erc6960_batch",
        {
            "contract_address": CONTRACT,
            "to": RECIPIENT,
            "main_ids": "1, 1",
            "sub_ids": "1,2",
            "amounts": "100,200",
        },
    )

    assert payload["details"]["tokenCount"] == 2
    assert chain.writes[0]["fn"] == "mintBatch"
    assert chain.writes[0]["args"] == [RECIPIENT, [1, 1], [1, 2], [100, 200], b""]


def test_mint_erc6960_batch_length_mismatch():
    ctx, chain = _make_ctx(_full_env())
    payload = _call(
        ctx,
        "mint_erc6960_batch",
        {"contract_address": CONTRACT, "to": RECIPIENT, "main_ids": "1,2", "sub_ids": "1", "amounts": "5,5"},
    )
    assert payload["success"] is False
    assert chain.writes == []


def test_transfer_erc6960_sends_from_active_wallet():
    ctx, chain = _make_ctx(_full_env())
    _call(ctx, "switch_to_buyer")
    _call(
        ctx,
        "transfer_erc6960",
        {"contract_address": CONTRACT, "to": RECIPIENT, "main_id": "7", "sub_id": "2", "amount": "10"},
    )

    buyer = Account.from_key(BUYER_KEY).address
    assert chain.writes[0]["fn"] == "safeTransferFrom"
    assert chain.writes[0]["args"] == [buyer, RECIPIENT, 7, 2, 10, b""]


def test_erc6960_reads():
    ctx, chain = _make_ctx({})
    chain.reads = {"balanceOf": 42, "uri": "ipfs://asset/1/2"}

    balance = _call(
        ctx,
        "get_erc6960_balance",
        {"contract_address": CONTRACT, "account": RECIPIENT, "main_id": "1", "sub_id": "2"},
    )
    uri = _call(ctx, "get_erc6960_uri", {"contract_address": CONTRACT, "main_id": "1", "sub_id": "2"})

    assert balance["balance"] == "42"
    assert uri["uri"] == "ipfs://asset/1/2"


# ---------------------------------------------------------------------------
# On-chain tool set
# ---------------------------------------------------------------------------


def test_onchain_tool_runs_against_active_wallet():
    ctx, _ = _make_ctx(_full_env())
    payload = _call(ctx, "onchain_get_token_balance", {"symbol": "USDC"})

    assert payload["success"] is True
    assert payload["result"] == {"op": "get_token_balance", "wallet": "catmm_seller", "args": {"symbol": "USDC"}}

    _call(ctx, "switch_to_buyer")
    payload = _call(ctx, "onchain_get_address")
    assert payload["result"]["wallet"] == "catmm_buyer"


def test_switch_and_onchain_call_share_one_rebuild():
    def client_factory(identity):
        if identity.id == "catmm_buyer":
            time.sleep(0.2)
        return identity.id

    ctx = server.WalletContext(
        XDCConfig(),
        IdentityRegistry.from_env(_full_env()),
        synchronizer=ToolRegistrySynchronizer(client_factory, FakeToolSet),
        chain_factory=lambda cfg, network: FakeChain(),
    )
    asyncio.run(ctx.startup())
    before = ctx.synchronizer.rebuild_count

    async def scenario():
        return await asyncio.gather(
            server.dispatch(ctx, "switch_to_buyer", {}),
            server.dispatch(ctx, "onchain_get_address", {}),
        )

    switched, op = [json.loads(r[0].text) for r in asyncio.run(scenario())]

    assert switched["onchainToolsReinitialized"] is True
    assert switched["readyForOperations"] is True
    assert op["success"] is True
    assert op["result"]["wallet"] == "catmm_buyer"
    assert ctx.synchronizer.rebuild_count == before + 1
    assert ctx.synchronizer.bound_identity_id == "catmm_buyer"


def test_onchain_tool_unknown_operation():
    ctx, _ = _make_ctx(_full_env())
    payload = _call(ctx, "onchain_mint_everything")
    assert payload["success"] is False
    assert payload["error"] == "Unknown tool: onchain_mint_everything"


def test_onchain_tool_unavailable_when_construction_fails():
    ctx, _ = _make_ctx(_full_env(), fail_tools=True)
    payload = _call(ctx, "onchain_get_address")

    assert payload["success"] is False
    assert "On-chain tools unavailable" in payload["error"]


def test_list_available_onchain_tools():
    ctx, _ = _make_ctx(_full_env())
    short = _call(ctx, "list_available_onchain_tools")
    detailed = _call(ctx, "list_available_onchain_tools", {"show_details": True})

    assert short["toolNames"] == ["onchain_get_address", "onchain_get_token_balance"]
    assert detailed["tools"][1]["serverToolName"] == "onchain_get_token_balance"


def test_get_onchain_tool_info():
    ctx, _ = _make_ctx(_full_env())
    found = _call(ctx, "get_onchain_tool_info", {"tool_name": "onchain_get_address"})
    missing = _call(ctx, "get_onchain_tool_info", {"tool_name": "burn"})

    assert found["name"] == "get_address"
    assert missing["success"] is False
    assert missing["availableTools"] == ["get_address", "get_token_balance"]


def test_unknown_tool():
    ctx, _ = _make_ctx(_full_env())
    payload = _call(ctx, "does_not_exist")
    assert payload == {"success": False, "error": "Unknown tool: does_not_exist"}


def test_context_from_env_reads_wallets_and_network():
    ctx = server.WalletContext.from_env(
        {"XDC_NETWORK": "mainnet", "CAT_MM_BUYER_WALLET_PRIVATE_KEY": BUYER_KEY}
    )
    assert ctx.cfg.network == "mainnet"
    assert [w.id for w in ctx.registry.list_all()] == ["catmm_buyer"]
    assert ctx.chain().chain.chain_id == 50
    assert ctx.chain("mainnet") is ctx.chain()


def test_get_nft_info():
    ctx, chain = _make_ctx({})
    chain.reads = {"ownerOf": RECIPIENT, "tokenURI": "ipfs://nft/7"}
    payload = _call(ctx, "get_nft_info", {"contract_address": CONTRACT, "token_id": "7"})

    assert payload["owner"] == RECIPIENT
    assert payload["tokenId"] == "7"
    assert payload["tokenURI"] == "ipfs://nft/7"
