"""audited framework calls that bypass the analyzers.

flagging 0x1::coin::transfer as risky is noise: framework modules at the
reserved addresses are the canonical implementations every wallet uses.
administrative calls in NEVER_WHITELIST always get the full analysis, even
inside an otherwise safe module.
"""

from dataclasses import dataclass
from typing import Optional

FRAMEWORK_ADDRESSES = frozenset({"0x1", "0x2", "0x3", "0x4"})

SAFE_CORE_MODULES = frozenset({
    "coin",
    "aptos_coin",
    "account",
    "aptos_account",
    "managed_coin",
    "primary_fungible_store",
    "fungible_asset",
    "object",
    "option",
    "string",
    "vector",
    "signer",
    "timestamp",
    "block",
    "transaction_context",
    "type_info",
    "table",
    "simple_map",
    "event",
    "guid",
    "hash",
    "bcs",
    "ed25519",
    "multi_ed25519",
    "secp256k1",
    "from_bcs",
    "math64",
    "math128",
    "comparator",
    "resource_account",
})

SAFE_FUNCTIONS = frozenset({
    "coin::transfer",
    "coin::deposit",
    "coin::withdraw",
    "coin::balance",
    "coin::is_account_registered",
    "coin::register",
    "coin::value",
    "aptos_coin::transfer",
    "aptos_coin::mint",
    "account::create_account",
    "account::exists_at",
    "account::get_sequence_number",
    "aptos_account::transfer",
    "aptos_account::create_account",
    "aptos_account::transfer_coins",
    "managed_coin::register",
    "managed_coin::mint",
    "managed_coin::burn",
    "primary_fungible_store::transfer",
    "primary_fungible_store::deposit",
    "primary_fungible_store::withdraw",
    "fungible_asset::transfer",
    "fungible_asset::deposit",
    "fungible_asset::withdraw",
    "object::transfer",
    "object::create_object",
})

# key rotation and code deployment at a framework address still count as risky
NEVER_WHITELIST = frozenset({
    "code::publish_package_txn",
    "resource_account::create_resource_account",
    "account::rotate_authentication_key",
})


def normalize_address(address: str) -> str:
    """0x0000...0001 -> 0x1, lower-cased"""
    address = (address or "").strip().lower()
    if not address.startswith("0x"):
        return address
    digits = address[2:].lstrip("0")
    return f"0x{digits or '0'}"


def is_framework_address(address: str) -> bool:
    return normalize_address(address) in FRAMEWORK_ADDRESSES


def is_never_whitelisted(module_name: str, function_name: str) -> bool:
    return f"{module_name}::{function_name}" in NEVER_WHITELIST


@dataclass(frozen=True)
class WhitelistCheck:
    is_whitelisted: bool
    is_framework_address: bool
    is_safe_module: bool
    is_safe_function: bool
    reason: Optional[str] = None

    def to_dict(self):
        return {
            "is_whitelisted": self.is_whitelisted,
            "is_framework_address": self.is_framework_address,
            "is_safe_module": self.is_safe_module,
            "is_safe_function": self.is_safe_function,
            "reason": self.reason,
        }


def check_whitelist(module_address: str, module_name: str, function_name: str) -> WhitelistCheck:
    address = normalize_address(module_address)
    framework = address in FRAMEWORK_ADDRESSES
    safe_module = framework and module_name in SAFE_CORE_MODULES
    safe_function = f"{module_name}::{function_name}" in SAFE_FUNCTIONS
    whitelisted = framework and (safe_module or safe_function) and not is_never_whitelisted(module_name, function_name)

    reason = None
    if whitelisted and safe_function:
        reason = f"{address}::{module_name}::{function_name} is a known-safe framework function"
    elif whitelisted:
        reason = f"{address}::{module_name} is a known-safe framework module"

    return WhitelistCheck(
        is_whitelisted=whitelisted,
        is_framework_address=framework,
        is_safe_module=safe_module,
        is_safe_function=safe_function,
        reason=reason,
    )
