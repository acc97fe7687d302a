"""
Stable operation names stamped on every ErrorEnvelope.

These strings are part of the public contract: callers match on them
for log correlation and alerting, so they never change once released.
"""

from __future__ import annotations


class OP_DEPOSITS:
    quote = "deposits.quote"
    try_quote = "deposits.tryQuote"
    prepare = "deposits.prepare"
    try_prepare = "deposits.tryPrepare"
    create = "deposits.create"
    try_create = "deposits.tryCreate"
    status = "deposits.status"
    wait = "deposits.wait"
    try_wait = "deposits.tryWait"

    base_token = "deposits.context:baseToken"
    base_cost = "deposits.fees:l2BaseCost"
    allowance = "deposits.plan:allowance"
    est_gas = "deposits.plan:estimateGas"
    encode = "deposits.plan:encode"
    assert_non_base = "deposits.erc20-nonbase:assertNonBaseToken"
    send_step = "deposits.create:sendStep"
    l2_hash = "deposits.status:l2Hash"


class OP_WITHDRAWALS:
    quote = "withdrawals.quote"
    try_quote = "withdrawals.tryQuote"
    prepare = "withdrawals.prepare"
    try_prepare = "withdrawals.tryPrepare"
    create = "withdrawals.create"
    try_create = "withdrawals.tryCreate"
    status = "withdrawals.status"
    wait = "withdrawals.wait"
    try_wait = "withdrawals.tryWait"
    finalize = "withdrawals.finalize"
    try_finalize = "withdrawals.tryFinalize"

    allowance = "withdrawals.erc20:allowance"
    ensure_registered = "withdrawals.erc20:ensureTokenIsRegistered"
    encode = "withdrawals.plan:encode"
    send_step = "withdrawals.create:sendStep"

    fetch_params_receipt = "withdrawals.finalize.fetchParams:receipt"
    fetch_params_find_log = "withdrawals.finalize.fetchParams:findMessage"
    fetch_params_decode = "withdrawals.finalize.fetchParams:decodeMessage"
    fetch_params_proof = "withdrawals.finalize.fetchParams:proof"
    readiness_simulate = "withdrawals.finalize.readiness:simulate"
    is_finalized = "withdrawals.finalize:isFinalized"
    finalize_send = "withdrawals.finalize:send"
    finalize_wait = "withdrawals.finalize:wait"


class OP_INTEROP:
    quote = "interop.quote"
    try_quote = "interop.tryQuote"
    prepare = "interop.prepare"
    try_prepare = "interop.tryPrepare"
    create = "interop.create"
    try_create = "interop.tryCreate"
    status = "interop.status"
    wait = "interop.wait"
    try_wait = "interop.tryWait"
    finalize = "interop.finalize"
    try_finalize = "interop.tryFinalize"

    routes_direct_preflight = "interop.routes.direct:preflight"
    routes_direct_build = "interop.routes.direct:build"
    routes_indirect_preflight = "interop.routes.indirect:preflight"
    routes_indirect_build = "interop.routes.indirect:build"
    exec_send_step = "interop.exec:sendStep"
    exec_wait_step = "interop.exec:waitStep"

    svc_source_receipt = "interop.svc.status:sourceReceipt"
    svc_parse_sent_log = "interop.svc.status:parseSentLog"
    svc_dst_logs = "interop.svc.status:dstLogs"
    svc_derive = "interop.svc.status:derive"
    svc_get_root = "interop.svc.status:getRoot"
    svc_wait_poll = "interop.svc.wait:poll"
    svc_wait_timeout = "interop.svc.wait:timeout"
    svc_execute = "interop.svc.finalize:execute"


class OP_TOKENS:
    resolve = "tokens.resolve"
    to_l2_address = "tokens.toL2Address"
    to_l1_address = "tokens.toL1Address"
    asset_id_of_l1 = "tokens.assetIdOfL1"
    asset_id_of_l2 = "tokens.assetIdOfL2"
    l1_token_from_asset_id = "tokens.l1TokenFromAssetId"
    l2_token_from_asset_id = "tokens.l2TokenFromAssetId"
    origin_chain_id = "tokens.originChainId"
    base_token_asset_id = "tokens.baseTokenAssetId"
    is_chain_eth_based = "tokens.isChainEthBased"
    weth_l1 = "tokens.wethL1"
    weth_l2 = "tokens.wethL2"
    compute_l2_bridged_address = "tokens.computeL2BridgedAddress"


class OP_CLIENT:
    ensure_addresses = "client.ensureAddresses"
    base_token = "client.baseToken"
    backend_for = "client.backendFor"


class OP_ZKS:
    get_bridgehub_address = "zksrpc.getBridgehubAddress"
    get_bytecode_supplier_address = "zksrpc.getBytecodeSupplierAddress"
    get_l2_to_l1_log_proof = "zksrpc.getL2ToL1LogProof"
    get_receipt_with_l2_to_l1 = "zksrpc.getReceiptWithL2ToL1"
    get_genesis = "zksrpc.getGenesis"
    get_block_metadata_by_number = "zksrpc.getBlockMetadataByNumber"
