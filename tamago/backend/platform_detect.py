"""
Target triple parsing for the driver.

The architecture and OS macros of the preamble and the loader-marker
decision both come from here.
"""
from __future__ import annotations
from dataclasses import dataclass
from llvmlite import binding as llvm


@dataclass(frozen=True)
class TargetPlatform:
    """Represents a compilation target platform."""
    arch: str      # x86_64, aarch64, riscv64, etc.
    vendor: str    # apple, pc, unknown, etc.
    os: str        # darwin, linux, windows, etc.
    abi: str       # (empty), gnu, musl, etc.

    @property
    def triple(self) -> str:
        """Reconstruct the target triple string."""
        parts = [self.arch, self.vendor, self.os]
        if self.abi:
            parts.append(self.abi)
        return '-'.join(parts)


def parse_triple(triple: str) -> TargetPlatform:
    """
    Parse an LLVM target triple into components.

    Examples:
        arm64-apple-darwin25.0.0 -> TargetPlatform(arm64, apple, darwin, '')
        x86_64-pc-linux-gnu -> TargetPlatform(x86_64, pc, linux, gnu)
        x86_64-w64-windows-msvc -> TargetPlatform(x86_64, w64, windows, msvc)
    """
    parts = triple.split('-')

    # darwin25.0.0 -> darwin
    os_part = parts[2] if len(parts) > 2 else 'unknown'
    if os_part.startswith('darwin') or os_part.startswith('macos'):
        os_part = 'darwin'
    elif '.' in os_part:
        os_part = os_part.split('.')[0]

    return TargetPlatform(
        arch=parts[0] if len(parts) > 0 else 'unknown',
        vendor=parts[1] if len(parts) > 1 else 'unknown',
        os=os_part,
        abi=parts[3] if len(parts) > 3 else '',
    )


def get_current_platform() -> TargetPlatform:
    """Get the platform for the current compilation."""
    return parse_triple(llvm.get_default_triple())
