"""`fixelcorr match`: compute a fixel correspondence between two fixel datasets.

Example:
    fixelcorr match source/fd.nii.gz target/fd.nii.gz correspondence/
    fixelcorr match source/fd.nii.gz target/fd.nii.gz correspondence/ --algorithm nearest --angle 30
"""

import argparse
import os

from fixelcorr.core import runner
from fixelcorr.correspondence.algorithms import ALGORITHMS


class MatchCLI:
    def __init__(self, subparsers) -> None:
        self.subparsers = subparsers

    def validate_args(self, args):
        """Check that the input files exist before any work is started."""
        for key, label in (('cfg_path', 'Configuration file'),
                           ('source', 'Source fixel data file'),
                           ('target', 'Target fixel data file')):
            path = args.get(key)
            if path is not None and not os.path.exists(str(path)):
                raise FileNotFoundError(
                    f"{label} not found: {path}\n"
                    f"Please check the path and try again."
                )
        return args

    def run(self, args):
        runner.run_match(runner.build_config(args, runner.MATCH_ARGS))

    def add_subparser_args(self) -> argparse:
        subparser = self.subparsers.add_parser(
            "match",
            description="compute the fixel correspondence between a source and a target fixel dataset",
        )

        subparser.add_argument("source", nargs='?', default=None,
                               help="Fixel data file (e.g. fibre density) in the source fixel directory")
        subparser.add_argument("target", nargs='?', default=None,
                               help="Fixel data file (e.g. fibre density) in the target fixel directory")
        subparser.add_argument("output", nargs='?', default=None,
                               help="Output fixel correspondence directory (must not exist)")

        subparser.add_argument("--algorithm", type=str, default=None, choices=sorted(ALGORITHMS),
                               help="Matching algorithm (default: ni2022)")
        subparser.add_argument("--angle", type=float, default=None,
                               help="Maximum angle in degrees for algorithm 'nearest' (default: 45)")
        subparser.add_argument("--max_origins", type=int, default=None,
                               help="Maximum number of source fixels per target fixel (default: 3)")
        subparser.add_argument("--max_objectives", type=int, default=None,
                               help="Maximum number of target fixels per source fixel (default: 3)")
        subparser.add_argument("--min_hull_directions", type=int, default=None,
                               help="Fewest directions in a voxel for the convexity constraint to apply (default: 4)")
        subparser.add_argument("--constants", type=float, nargs=2, default=None, metavar=("ALPHA", "BETA"),
                               help="Cost function constants for algorithm 'ni2022' (default: 1.0 0.5)")
        subparser.add_argument("--cost", type=str, default=None,
                               help="Write the minimal cost per voxel to this NIfTI image")
        subparser.add_argument("--remapped", type=str, default=None,
                               help="Write the source fixels remapped onto the target fixel layout to this new directory")
        subparser.add_argument("--n_workers", type=int, default=None,
                               help="Number of worker threads (default: FIXELCORR_NUM_THREADS or physical cores)")
        subparser.add_argument("--cfg_path", nargs=None, type=str, dest='cfg_path', required=False,
                               help="The path to the configuration File")
        subparser.add_argument(
            "--output_mode",
            type=str,
            required=False,
            default=None,
            choices=["quiet", "standard", "verbose", "debug"],
            help="Terminal output mode (overrides config): quiet | standard | verbose | debug",
        )
        return self.subparsers
