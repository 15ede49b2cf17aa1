"""analysis of the deployed module behind a call"""

from .bytecode import BytecodeAnalyzer, BytecodeReport, analyze_abi
from .chain_client import ChainClient, FullnodeClient, ModuleABI, ModuleFunction, ModuleStruct, StaticChainClient
from .overflow import OverflowAnalyzer, OverflowReport, overflow_report
from .privilege import PrivilegeAnalyzer, PrivilegeReport, privilege_report

__all__ = [
    "BytecodeAnalyzer",
    "BytecodeReport",
    "analyze_abi",
    "ChainClient",
    "FullnodeClient",
    "ModuleABI",
    "ModuleFunction",
    "ModuleStruct",
    "StaticChainClient",
    "OverflowAnalyzer",
    "OverflowReport",
    "overflow_report",
    "PrivilegeAnalyzer",
    "PrivilegeReport",
    "privilege_report",
]
