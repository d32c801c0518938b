from __future__ import annotations

import configparser
import logging
import os
import shutil
import time
from typing import Any, Optional

from fixelcorr.core import io
from fixelcorr.core.configuration import MatchConfiguration, ProjectConfiguration
from fixelcorr.core.logfmt import (
    OUTPUT_MODE_LEVELS,
    STATUS,
    VERBOSE,
    FixelFormatter,
    ensure_custom_levels_registered,
    log_banner,
)
from fixelcorr.core.progress import set_progress_enabled
from fixelcorr.core.provenance import collect_provenance
from fixelcorr.core.validation import DataError


# CLI argument -> (section, option) of the run configuration.
MATCH_ARGS = {
    'source': ('INPUT', 'source_file'),
    'target': ('INPUT', 'target_file'),
    'output': ('OUTPUT', 'output_dir'),
    'cost': ('OUTPUT', 'cost_file'),
    'remapped': ('OUTPUT', 'remapped_dir'),
    'algorithm': ('MATCH', 'algorithm'),
    'angle': ('MATCH', 'angle'),
    'max_origins': ('MATCH', 'max_origins'),
    'max_objectives': ('MATCH', 'max_objectives'),
    'min_hull_directions': ('MATCH', 'min_hull_directions'),
    'n_workers': ('GLOBAL', 'n_workers'),
    'output_mode': ('GLOBAL', 'output_mode'),
}

PROJECT_ARGS = {
    'data_in': ('INPUT', 'data_file'),
    'correspondence': ('INPUT', 'correspondence_dir'),
    'weighted': ('INPUT', 'weights_file'),
    'directory_out': ('OUTPUT', 'directory_out'),
    'data_out': ('OUTPUT', 'data_out'),
    'metric': ('PROJECT', 'metric'),
    'fill': ('PROJECT', 'fill'),
    'nan_many2one': ('PROJECT', 'nan_many2one'),
    'nan_one2many': ('PROJECT', 'nan_one2many'),
    'n_workers': ('GLOBAL', 'n_workers'),
    'output_mode': ('GLOBAL', 'output_mode'),
}


def configure_logging(output_mode: str = 'standard') -> None:
    """Route all log records to the console at the level of the output mode."""
    ensure_custom_levels_registered()
    level = OUTPUT_MODE_LEVELS[output_mode]

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(FixelFormatter())

    logging.basicConfig(
        level=level,
        handlers=[console_handler],
        force=True,
    )
    # Quiet mode suppresses progress bars; otherwise defer to env/TTY.
    set_progress_enabled(False if output_mode == 'quiet' else None)


def build_config(args: dict[str, Any], arg_map: dict[str, tuple[str, str]]) -> configparser.ConfigParser:
    """Merge parsed CLI arguments over an optional configuration file."""
    cfg_file = configparser.ConfigParser(interpolation=None)
    cfg_path = args.get('cfg_path')
    if cfg_path:
        cfg_file.read(cfg_path)
        if not cfg_file.has_section('DEBUG'):
            cfg_file.add_section('DEBUG')
        cfg_file.set('DEBUG', 'cfg_source', str(cfg_path))

    for key, (section, option) in arg_map.items():
        value = args.get(key)
        if value is None or value is False:
            continue
        if not cfg_file.has_section(section):
            cfg_file.add_section(section)
        cfg_file.set(section, option, str(value))

    constants = args.get('constants')
    if constants is not None:
        if not cfg_file.has_section('MATCH'):
            cfg_file.add_section('MATCH')
        alpha, beta = constants
        cfg_file.set('MATCH', 'alpha', str(alpha))
        cfg_file.set('MATCH', 'beta', str(beta))

    for section in ('INPUT', 'OUTPUT', 'GLOBAL'):
        if not cfg_file.has_section(section):
            cfg_file.add_section(section)
    return cfg_file


def _log_inputs(title: str, items: dict[str, Any]) -> None:
    logging.info(' ----------------------------- ')
    logging.info(f'{title:^31}')
    logging.info(' ----------------------------- ')
    width = max(len(k) for k in items)
    for key, value in items.items():
        logging.info(f"  {key:<{width}}: {value}")


def _remove_output(path: str) -> None:
    if os.path.isdir(path):
        shutil.rmtree(path, ignore_errors=True)
    elif os.path.exists(path):
        os.remove(path)
    logging.warning(f"Removed partial output: {path}")


def run_match(cfg_file: configparser.ConfigParser) -> str:
    """Compute and save the fixel correspondence described by a configuration."""
    from fixelcorr.correspondence.algorithms import make_algorithm
    from fixelcorr.correspondence.fixel import FixelDataset
    from fixelcorr.correspondence.matcher import Matcher

    configuration = MatchConfiguration(cfg_file)
    configure_logging(configuration.output_mode)
    start = time.time()

    log_banner('Fixel Correspondence', level=STATUS)
    algorithm = make_algorithm(configuration.algorithm, **configuration.algorithm_params())
    _log_inputs('Input Files', {
        'Source': configuration.source_path,
        'Target': configuration.target_path,
        'Output': configuration.output_dir,
    })
    _log_inputs('Algorithm', algorithm.describe())
    if configuration.verbose_flag:
        for key, value in collect_provenance().items():
            logging.log(VERBOSE, f"  {key}: {value}")

    source = FixelDataset.from_data_file(configuration.source_path, name='source')
    target = FixelDataset.from_data_file(configuration.target_path, name='target')
    logging.info(f"Source: {source.nfixels:,} fixels; target: {target.nfixels:,} fixels; grid {target.shape}")

    matcher = Matcher(source, target, algorithm)
    if configuration.cost_path is not None:
        algorithm.allocate_cost_volume(target.shape)

    mapping = matcher.run(configuration.n_workers)

    metadata = collect_provenance(
        command='match',
        algorithm=algorithm.describe(),
        source=os.path.abspath(configuration.source_path),
        target=os.path.abspath(configuration.target_path),
    )
    # The mapping is committed last; earlier outputs are removed if any write fails.
    written: list[str] = []
    try:
        if configuration.cost_path is not None:
            cost = algorithm.export_cost_volume(configuration.cost_path, target.affine)
            if cost is not None:
                written.append(cost)
                logging.info(f"Cost volume saved: {cost}")
        if configuration.remapped_dir is not None:
            written.append(
                matcher.export_remapped(configuration.remapped_dir, os.path.basename(configuration.target_path))
            )
        output = mapping.save(configuration.output_dir, metadata)
    except BaseException:
        for path in written:
            _remove_output(path)
        raise

    logging.log(STATUS, f"Total Runtime: {round(time.time() - start, 4)} sec")
    return output


def run_project(cfg_file: configparser.ConfigParser) -> str:
    """Project one source fixel data file onto a target fixel directory."""
    from fixelcorr.correspondence.mapping import Mapping
    from fixelcorr.correspondence.projector import FillSettings, Projector

    configuration = ProjectConfiguration(cfg_file)
    configure_logging(configuration.output_mode)
    start = time.time()

    log_banner('Fixel Projection', level=STATUS)
    _log_inputs('Input Files', {
        'Data': configuration.data_path,
        'Correspondence': configuration.correspondence_dir,
        'Weights': configuration.weights_path or 'none',
        'Output': configuration.output_path,
    })
    _log_inputs('Projection', {
        'Metric': configuration.metric,
        'Fill': configuration.fill,
        'NaN many-to-one': configuration.nan_many2one,
        'NaN one-to-many': configuration.nan_one2many,
    })

    mapping = Mapping.load(configuration.correspondence_dir)
    counts, _, _ = io.load_index(configuration.directory_out)
    if int(counts.sum()) != len(mapping):
        raise DataError(
            f"Target fixel directory holds {int(counts.sum()):,} fixels but the fixel correspondence "
            f"has {len(mapping):,} target fixels.\n"
            f"Check that '{configuration.directory_out}' is the target of this correspondence."
        )

    values = io.load_fixel_data(configuration.data_path)
    weights: Optional[Any] = None
    if configuration.weights_path is not None:
        weights = io.load_fixel_data(configuration.weights_path)

    source_directions = target_directions = None
    if configuration.metric == 'angle':
        source_directions = io.load_directions(io.fixel_directory_of(configuration.data_path))
        target_directions = io.load_directions(configuration.directory_out)

    projector = Projector(
        mapping,
        values,
        configuration.metric,
        fill=FillSettings(configuration.fill, configuration.nan_many2one, configuration.nan_one2many),
        weights=weights,
        source_directions=source_directions,
        target_directions=target_directions,
    )
    output = projector.run(configuration.n_workers)
    path = io.save_fixel_data(output, configuration.output_path)
    logging.info(f"Projected data saved: {path}")

    logging.log(STATUS, f"Total Runtime: {round(time.time() - start, 4)} sec")
    return path
