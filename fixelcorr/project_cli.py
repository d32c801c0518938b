"""`fixelcorr project`: project fixel data through a fixel correspondence.

Example:
    fixelcorr project source/fa.nii.gz correspondence/ mean target/ fa_from_source.nii.gz
"""

import argparse
import os

from fixelcorr.correspondence.projector import METRICS
from fixelcorr.core import runner


class ProjectCLI:
    def __init__(self, subparsers) -> None:
        self.subparsers = subparsers

    def validate_args(self, args):
        """Check that the input files exist before any work is started."""
        for key, label in (('cfg_path', 'Configuration file'),
                           ('data_in', 'Source fixel data file'),
                           ('correspondence', 'Fixel correspondence directory'),
                           ('weighted', 'Weights file'),
                           ('directory_out', 'Target fixel directory')):
            path = args.get(key)
            if path is not None and not os.path.exists(str(path)):
                raise FileNotFoundError(
                    f"{label} not found: {path}\n"
                    f"Please check the path and try again."
                )
        return args

    def run(self, args):
        runner.run_project(runner.build_config(args, runner.PROJECT_ARGS))

    def add_subparser_args(self) -> argparse:
        subparser = self.subparsers.add_parser(
            "project",
            description="project source fixel data onto target fixels using a fixel correspondence",
        )

        subparser.add_argument("data_in", nargs='?', default=None,
                               help="Source fixel data file")
        subparser.add_argument("correspondence", nargs='?', default=None,
                               help="Fixel correspondence directory produced by 'fixelcorr match'")
        subparser.add_argument("metric", nargs="?", default=None,
                               help="Aggregation metric: " + " | ".join(METRICS))
        subparser.add_argument("directory_out", nargs='?', default=None,
                               help="Existing target fixel directory")
        subparser.add_argument("data_out", nargs='?', default=None,
                               help="Name of the new fixel data file written into DIRECTORY_OUT")

        subparser.add_argument("--weighted", type=str, default=None,
                               help="Fixel data file of explicit per-source-fixel weights")
        subparser.add_argument("--fill", type=float, default=None,
                               help="Value for target fixels without corresponding source fixels (default: 0)")
        subparser.add_argument("--nan_many2one", action="store_true",
                               help="Write NaN to target fixels fed by more than one source fixel")
        subparser.add_argument("--nan_one2many", action="store_true",
                               help="Write NaN to target fixels fed by a source fixel that is split across targets")
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
