#!/usr/bin/env python3
"""Generate NormalizationUnit Verilog from streamcnn."""

import sys
from pathlib import Path

# Add src to path if running from scripts/
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from amaranth.back import verilog  # noqa: E402

from streamcnn.config import DEFAULT_ACCELERATOR_CONFIG  # noqa: E402
from streamcnn.norm import NormalizationUnit  # noqa: E402


def main():
    gen_dir = project_root / "gen"
    gen_dir.mkdir(exist_ok=True)

    unit = NormalizationUnit(channels=DEFAULT_ACCELERATOR_CONFIG.max_channels)

    output_path = gen_dir / "normalization_unit.v"
    with open(output_path, "w") as f:
        f.write(verilog.convert(unit, name="NormalizationUnit"))

    print(f"Generated {output_path}")


if __name__ == "__main__":
    main()
