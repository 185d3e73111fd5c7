"""
Unit compiler: preamble synthesis and front-end invocation.

Every translation unit starts with the same preamble, built from the
configuration and the target platform.
"""
from __future__ import annotations
from typing import TextIO

from tamago.backend.codegen_llvm import compile_translation_unit
from tamago.backend.objects import ObjectUnit
from tamago.backend.platform_detect import TargetPlatform
from tamago.compiler.config import BuildConfig
from tamago.frontend import preprocess
from tamago.frontend.parser import parse_sources


def make_preamble(cfg: BuildConfig, platform: TargetPlatform) -> preprocess.Preamble:
    return preprocess.Preamble(
        defines=tuple(cfg.define_lines()),
        arch=platform.arch,
        os=platform.os,
    )


def compile_unit(cfg: BuildConfig, sources: list[str], platform: TargetPlatform) -> ObjectUnit:
    """Compile sources as ONE translation unit into a relocatable object.

    Raises:
        FrontendError: on preprocessing, parse or lowering diagnostics.
    """
    tu = parse_sources(make_preamble(cfg, platform), sources, cfg.include_paths)
    return compile_translation_unit(tu, platform.triple, tuple(sorted(cfg.extras)))


def preprocess_sources(cfg: BuildConfig, sources: list[str], platform: TargetPlatform,
                       out: TextIO) -> None:
    """Write the expanded token stream of sources to out."""
    preprocess.write_expanded(make_preamble(cfg, platform), sources, cfg.include_paths, out)
