"""
Function selector helpers.

Derives 4-byte selectors from function signatures and contract ABIs, and
encodes the zero-argument initializer calls run alongside a diamond cut.
"""

from typing import Any, Dict, Iterable, List

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, to_bytes, to_checksum_address

DIAMOND_CUT_SIGNATURE = "diamondCut((address,uint8,bytes4[])[],address,bytes)"

DIAMOND_CUT_FUNCTION_INTERFACE: Dict[str, Any] = {
    "name": "diamondCut",
    "inputs": [
        {
            "name": "_diamondCut",
            "type": "tuple[]",
            "components": [
                {"name": "facetAddress", "type": "address"},
                {"name": "action", "type": "uint8"},
                {"name": "functionSelectors", "type": "bytes4[]"},
            ],
        },
        {"name": "_init", "type": "address"},
        {"name": "_calldata", "type": "bytes"},
    ],
}


def selector_for(signature: str) -> str:
    """Return 0x-prefixed selector hex for a function signature."""
    return "0x" + function_signature_to_4byte_selector(signature).hex()


DIAMOND_CUT_SELECTOR = selector_for(DIAMOND_CUT_SIGNATURE)


def _canonical_type(param: Dict[str, Any]) -> str:
    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(_canonical_type(component) for component in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def abi_function_signature(abi_item: Dict[str, Any]) -> str:
    """Canonical signature ``name(type,...)`` of an ABI function entry."""
    types = ",".join(_canonical_type(param) for param in abi_item.get("inputs", []))
    return f"{abi_item['name']}({types})"


def selectors_from_abi(abi: Iterable[Dict[str, Any]]) -> List[str]:
    """Selectors of every function in an ABI, in ABI order."""
    return [
        selector_for(abi_function_signature(item))
        for item in abi
        if item.get("type") == "function"
    ]


def normalize_init_signature(function_name: str) -> str:
    """``initialize`` -> ``initialize()``; full signatures pass through unchanged."""
    return function_name if "(" in function_name else f"{function_name}()"


def encode_init_calldata(function_name: str) -> str:
    """Calldata for a zero-argument initializer call."""
    return selector_for(normalize_init_signature(function_name))


def encode_diamond_cut_calldata(
    cuts: Iterable[Dict[str, Any]], init_address: str, init_calldata: str
) -> str:
    """Full ``diamondCut`` calldata for ABI-shaped cut records."""
    facet_cuts = [
        (
            to_checksum_address(cut["facetAddress"]),
            int(cut["action"]),
            [to_bytes(hexstr=selector) for selector in cut["functionSelectors"]],
        )
        for cut in cuts
    ]
    encoded = encode(
        ["(address,uint8,bytes4[])[]", "address", "bytes"],
        [facet_cuts, to_checksum_address(init_address), to_bytes(hexstr=init_calldata)],
    )
    return DIAMOND_CUT_SELECTOR + encoded.hex()
