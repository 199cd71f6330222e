"""CPU feature flags taken from the kernel's hardware capability words."""

from __future__ import annotations

import platform
import struct
from typing import Dict, List, Mapping, Optional, Tuple

AT_NULL = 0
AT_HWCAP = 16
AT_HWCAP2 = 26

AUXV_PATH = "/proc/self/auxv"

# Each auxv entry is a pair of native unsigned longs: type and value.
_AUXV_ENTRY = struct.Struct("@LL")


def _bit_table(names: Tuple[str, ...]) -> Dict[int, str]:
    return {1 << bit: name for bit, name in enumerate(names)}


_ARM_HWCAP = _bit_table((
    "SWP", "HALF", "THUMB", "26BIT", "FASTMUL", "FPA", "VFP", "EDSP", "JAVA",
    "IWMMXT", "CRUNCH", "THUMBEE", "NEON", "VFPv3", "VFPv3D16", "TLS", "VFPv4",
    "IDIVA", "IDIVT", "IDIV", "VFPD32", "LPAE", "EVTSTRM", "AES", "PMULL",
    "SHA1", "SHA2", "CRC32",
))

_ARM64_HWCAP = _bit_table((
    "FP", "ASIMD", "EVTSTRM", "AES", "PMULL", "SHA1", "SHA2", "CRC32",
    "ATOMICS", "FPHP", "ASIMDHP", "CPUID", "ASIMDRDM", "JSCVT", "FCMA",
    "LRCPC", "DCPOP", "SHA3", "SM3", "SM4", "ASIMDDP", "SHA512", "SVE",
))

_S390X_HWCAP = _bit_table((
    "ESAN3", "ZARCH", "STFLE", "MSA", "LDISP", "EIMM", "DFP", "EDAT",
    "ETF3EH", "HIGHGPRS", "TE", "VX", "VXD", "VXE", "GS", "VXE2", "VXP",
    "SORT", "DFLT",
))

_PPC64LE_HWCAP = {
    0x80000000: "PPC32",
    0x40000000: "PPC64",
    0x20000000: "PPC601",
    0x10000000: "ALTIVEC",
    0x08000000: "FPU",
    0x04000000: "MMU",
    0x02000000: "4xxMAC",
    0x01000000: "UCACHE",
    0x00800000: "SPE",
    0x00400000: "EFPFLOAT",
    0x00200000: "EFPDOUBLE",
    0x00100000: "NOTB",
    0x00080000: "POWER4",
    0x00040000: "POWER5",
    0x00020000: "POWER5+",
    0x00010000: "CELLBE",
    0x00008000: "BOOKE",
    0x00004000: "SMT",
    0x00002000: "IC_SNOOP",
    0x00001000: "ARCH_2_05",
    0x00000800: "PA6T",
    0x00000400: "DFP",
    0x00000200: "POWER6X",
    0x00000100: "ARCH_2_06",
    0x00000080: "VSX",
    0x00000040: "ARCHPMU",
    0x00000002: "TRUE_LE",
    0x00000001: "PPCLE",
}

_PPC64LE_HWCAP2 = {
    0x80000000: "ARCH_2_07",
    0x40000000: "HTM",
    0x20000000: "DSCR",
    0x10000000: "EBB",
    0x08000000: "ISEL",
    0x04000000: "TAR",
    0x02000000: "VCRYPTO",
    0x01000000: "HTM-NOSC",
    0x00800000: "ARCH_3_00",
    0x00400000: "IEEE128",
    0x00200000: "DARN",
    0x00100000: "SCV",
    0x00080000: "HTM-NO-SUSPEND",
}

_TABLES: Dict[str, Tuple[Mapping[int, str], Mapping[int, str]]] = {
    "arm": (_ARM_HWCAP, {}),
    "arm64": (_ARM64_HWCAP, {}),
    "ppc64le": (_PPC64LE_HWCAP, _PPC64LE_HWCAP2),
    "s390x": (_S390X_HWCAP, {}),
}

_ARCH_ALIASES = {
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv6l": "arm",
    "armv7l": "arm",
    "armv8l": "arm",
    "arm": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}


def _normalize_arch(arch: str) -> Optional[str]:
    return _ARCH_ALIASES.get(arch.lower())


def _named_bits(word: int, names: Mapping[int, str]) -> List[str]:
    return [names[1 << bit] for bit in range(64) if word & (1 << bit) and (1 << bit) in names]


def hwcap_flags(arch: str, hwcap: int, hwcap2: int = 0) -> List[str]:
    """Return the feature names set in the capability words, lowest bit first.

    Bits without a name are left out. Raises ValueError for an architecture
    that has no capability table.
    """
    key = _normalize_arch(arch)
    if key is None:
        raise ValueError(f"no hardware capability table for architecture {arch!r}")
    names, names2 = _TABLES[key]
    return _named_bits(hwcap, names) + _named_bits(hwcap2, names2)


def read_auxv(path: str = AUXV_PATH) -> Dict[int, int]:
    """Read an auxiliary vector file into a mapping of entry type to value."""
    with open(path, "rb") as f:
        data = f.read()
    usable = len(data) - len(data) % _AUXV_ENTRY.size
    entries: Dict[int, int] = {}
    for a_type, a_val in _AUXV_ENTRY.iter_unpack(data[:usable]):
        if a_type == AT_NULL:
            break
        entries[a_type] = a_val
    return entries


def get_cpuid_flags(arch: Optional[str] = None, auxv_path: str = AUXV_PATH) -> List[str]:
    """Return the CPU feature flags of this machine.

    Architectures without a capability table yield an empty list.
    """
    arch = arch or platform.machine()
    if _normalize_arch(arch) is None:
        return []
    auxv = read_auxv(auxv_path)
    return hwcap_flags(arch, auxv.get(AT_HWCAP, 0), auxv.get(AT_HWCAP2, 0))