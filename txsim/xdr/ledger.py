"""Ledger keys, entries and the result metadata of a replayed transaction."""

from __future__ import annotations

from collections.abc import Iterator

from stellar_sdk import xdr as stellar_xdr

from txsim.xdr.codec import encode_b64_binary

LedgerKey = stellar_xdr.LedgerKey
LedgerEntry = stellar_xdr.LedgerEntry
LedgerEntryType = stellar_xdr.LedgerEntryType
LedgerEntryChange = stellar_xdr.LedgerEntryChange
LedgerEntryChangeType = stellar_xdr.LedgerEntryChangeType
TransactionResultMeta = stellar_xdr.TransactionResultMeta

# entry type -> (union arm, key struct, identifying fields); arm and field
# names are the same on the entry and the key side.
_KEY_LAYOUT: dict[LedgerEntryType, tuple[str, type, tuple[str, ...]]] = {
    LedgerEntryType.ACCOUNT: ("account", stellar_xdr.LedgerKeyAccount, ("account_id",)),
    LedgerEntryType.TRUSTLINE: ("trust_line", stellar_xdr.LedgerKeyTrustLine, ("account_id", "asset")),
    LedgerEntryType.OFFER: ("offer", stellar_xdr.LedgerKeyOffer, ("seller_id", "offer_id")),
    LedgerEntryType.DATA: ("data", stellar_xdr.LedgerKeyData, ("account_id", "data_name")),
    LedgerEntryType.CLAIMABLE_BALANCE: (
        "claimable_balance",
        stellar_xdr.LedgerKeyClaimableBalance,
        ("balance_id",),
    ),
    LedgerEntryType.LIQUIDITY_POOL: (
        "liquidity_pool",
        stellar_xdr.LedgerKeyLiquidityPool,
        ("liquidity_pool_id",),
    ),
    LedgerEntryType.CONTRACT_DATA: (
        "contract_data",
        stellar_xdr.LedgerKeyContractData,
        ("contract", "key", "durability"),
    ),
    LedgerEntryType.CONTRACT_CODE: ("contract_code", stellar_xdr.LedgerKeyContractCode, ("hash",)),
    LedgerEntryType.CONFIG_SETTING: (
        "config_setting",
        stellar_xdr.LedgerKeyConfigSetting,
        ("config_setting_id",),
    ),
    LedgerEntryType.TTL: ("ttl", stellar_xdr.LedgerKeyTtl, ("key_hash",)),
}


def ledger_key_of(entry: LedgerEntry) -> LedgerKey:
    """The key under which ``entry`` is stored."""
    arm, key_cls, fields = _KEY_LAYOUT[entry.data.type]
    body = getattr(entry.data, arm)
    return LedgerKey(entry.data.type, **{arm: key_cls(*(getattr(body, f) for f in fields))})


def key_id(key: LedgerKey) -> bytes:
    """Canonical identity of a key; generated XDR classes hash unreliably."""
    return key.to_xdr_bytes()


def format_ledger_key(key: LedgerKey) -> str:
    return f"{key.type.name}:{encode_b64_binary(key)}"


def entry_size(entry: LedgerEntry) -> int:
    return len(entry.to_xdr_bytes())


# ── Result meta ──────────────────────────────────────────────────────────────


def meta_tx_hash(meta: TransactionResultMeta) -> str:
    return meta.result.transaction_hash.hash.hex()


def meta_fee_charged(meta: TransactionResultMeta) -> int:
    return meta.result.result.fee_charged.int64


def meta_changes(meta: TransactionResultMeta) -> Iterator[LedgerEntryChange]:
    """Every ledger change of the transaction in apply order, fee processing first."""
    yield from meta.fee_processing.ledger_entry_changes

    apply = meta.tx_apply_processing
    if apply.v == 0:
        groups = [op.changes for op in apply.operations]
    elif apply.v == 1:
        groups = [apply.v1.tx_changes, *(op.changes for op in apply.v1.operations)]
    else:
        body = getattr(apply, f"v{apply.v}")
        groups = [
            body.tx_changes_before,
            *(op.changes for op in body.operations),
            body.tx_changes_after,
        ]
    for group in groups:
        yield from group.ledger_entry_changes
