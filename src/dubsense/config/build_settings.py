"""Generator settings passed to dub for describe and build runs."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .compilers import BuildPlatform, CompilerInfo

# Compiler flags suppressing object file output, per compiler family
NO_OUTPUT_DFLAGS = {"dmd": "-o-", "ldc": "-o-", "gdc": "-fsyntax-only"}


def no_output_dflag(compiler_name: str) -> str:
    return NO_OUTPUT_DFLAGS.get(compiler_name, NO_OUTPUT_DFLAGS["dmd"])


@dataclass(frozen=True)
class GeneratorSettings:
    """Selections and options for one dub invocation.

    Attributes:
        platform: Target platform derived from compiler and arch type
        config: Configuration name
        build_type: Build type name
        compiler: Resolved compiler
        arch_type: Explicit arch type (None lets dub pick the host default)
        combined: Build all packages in one compiler run
        run: Run the target after building
        syntax_only: Only check sources, do not generate code
        temp_build: Build into a temporary directory
        dflags: Extra flags passed to the compiler
    """

    platform: BuildPlatform
    config: str
    build_type: str
    compiler: CompilerInfo
    arch_type: Optional[str] = None
    combined: bool = False
    run: bool = False
    syntax_only: bool = False
    temp_build: bool = False
    dflags: Tuple[str, ...] = field(default_factory=tuple)

    def selector_args(self) -> List[str]:
        """Command line arguments selecting configuration, build type, compiler and arch."""
        args = [
            f"--config={self.config}",
            f"--build={self.build_type}",
            f"--compiler={self.compiler.binary}",
        ]
        if self.arch_type:
            args.append(f"--arch={self.arch_type}")
        return args

    def build_args(self) -> List[str]:
        """Full argument list for `dub build`."""
        args = ["build"] + self.selector_args()
        if self.combined:
            args.append("--combined")
        if self.temp_build:
            args.append("--temp-build")
        if self.run:
            args.append("--run")
        return args

    def env_dflags(self) -> str:
        """Value for the DFLAGS environment variable, empty when nothing is added.

        Syntax-only runs add the compiler's no-output flag. dub releases that
        only read DFLAGS for the '$DFLAGS' build type ignore it; `--temp-build`
        still keeps every artifact out of the project directory.
        """
        flags = list(self.dflags)
        no_output = no_output_dflag(self.compiler.name)
        if self.syntax_only and no_output not in flags:
            flags.append(no_output)
        return " ".join(flags)
