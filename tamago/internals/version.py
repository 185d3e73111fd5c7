from __future__ import annotations
import sys, platform, datetime

from tamago import __version__ as app_ver, __dev__ as is_dev

def _get_versions() -> dict[str, str]:
    import llvmlite
    import pycparser
    from llvmlite import binding as llvm

    llvm_lib_ver = ".".join(map(str, (getattr(llvm, "llvm_version_info", None) or ()))) or "unknown"

    return {
        "app": app_ver,
        "python": platform.python_version(),
        "llvmlite": getattr(llvmlite, "__version__", "unknown"),
        "llvm": llvm_lib_ver,
        "pycparser": getattr(pycparser, "__version__", "unknown"),
    }

def print_banner(tool: str = "tamago") -> None:
    v = _get_versions()
    today = datetime.date.today().isoformat()

    # Only style interactive terminals
    if sys.stdout.isatty():
        BOLD, DIM, RESET = "\x1b[1m", "\x1b[2m", "\x1b[0m"
    else:
        BOLD, DIM, RESET = "", "", ""

    dev_marker = " (dev)" if is_dev else ""
    print(
        f"{BOLD}{tool} (卵) C toolchain{RESET} • {v['app']}{dev_marker}\n"
        f"{DIM}Python {v['python']} • llvmlite {v['llvmlite']} • LLVM {v['llvm']} • "
        f"pycparser {v['pycparser']} • {today}{RESET}"
    )
