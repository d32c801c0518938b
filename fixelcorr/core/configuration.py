import configparser
import os
from typing import Any, Optional

from fixelcorr.core.validation import ConfigurationError


NONE_LIKE = {'', 'n/a', 'na', 'none'}
TRUE_LIKE = {'1', 'true', 'yes', 'on'}
FALSE_LIKE = {'0', 'false', 'no', 'off'}

VALID_ALGORITHMS = ('nearest', 'ismrm2018', 'ni2022')
COMBINATORIAL_ALGORITHMS = ('ismrm2018', 'ni2022')
VALID_METRICS = ('sum', 'mean', 'count', 'angle')


class _BaseConfiguration:
    """Shared parsing of the [GLOBAL] and [DEBUG] sections."""

    required_sections: tuple = ('INPUT', 'OUTPUT')

    def __init__(self, cfg_file: configparser.ConfigParser) -> None:
        self.cfg_file = cfg_file
        for section in self.required_sections:
            if not cfg_file.has_section(section):
                raise ConfigurationError(
                    f"Missing required section [{section}] in configuration file.\n"
                    f"Check your .ini file and ensure all required sections are present."
                )
        self.output_mode = self._normalize_output_mode(self._get('GLOBAL', 'output_mode'))
        self.n_workers = self._get_int('GLOBAL', 'n_workers', default=None, minimum=1)
        self.cfg_source = self._get('DEBUG', 'cfg_source')

    @staticmethod
    def _normalize_output_mode(value: Optional[str]) -> str:
        if value is None:
            return 'standard'
        v = str(value).strip().lower()
        if v in {'quiet', 'q'}:
            return 'quiet'
        if v in {'standard', 'std', 'default'}:
            return 'standard'
        if v in {'verbose', 'v'}:
            return 'verbose'
        if v in {'debug', 'dbg'}:
            return 'debug'
        raise ConfigurationError(
            "Invalid output_mode value.\n"
            "Valid options: quiet | standard | verbose | debug\n"
            f"Current value: '{value}'"
        )

    @property
    def verbose_flag(self) -> bool:
        return self.output_mode in {'verbose', 'debug'}

    def _get(self, section: str, option: str) -> Optional[str]:
        if not self.cfg_file.has_option(section, option):
            return None
        value = str(self.cfg_file.get(section, option)).strip()
        if value.lower() in NONE_LIKE:
            return None
        return value

    def _require(self, section: str, option: str, description: str) -> str:
        value = self._get(section, option)
        if value is None:
            raise ConfigurationError(
                f"Missing required field '{option}' in [{section}] section.\n"
                f"This should specify the {description}.\n"
                f"Add '{option} = ...' to your configuration."
            )
        return value

    def _require_file(self, section: str, option: str, description: str) -> str:
        path = self._require(section, option, description)
        if not os.path.exists(path):
            raise ConfigurationError(
                f"File not found: {path}\n"
                f"Specified in configuration as '{option}'.\n"
                f"Check that the path is correct and the file exists."
            )
        return path

    def _require_new(self, path: Optional[str], option: str) -> Optional[str]:
        if path is not None and os.path.exists(path):
            raise ConfigurationError(
                f"Output path already exists: {path}\n"
                f"Specified in configuration as '{option}'.\n"
                f"Remove it manually or choose a different output path."
            )
        return path

    def _require_distinct_outputs(self, outputs: dict[str, Optional[str]]) -> None:
        seen: dict[str, str] = {}
        for option, path in outputs.items():
            if path is None:
                continue
            key = os.path.normcase(os.path.abspath(path))
            if key in seen:
                raise ConfigurationError(
                    f"Output paths collide: '{seen[key]}' and '{option}' are both {path}\n"
                    f"Every output must be written to its own path."
                )
            seen[key] = option
            parent = os.path.dirname(os.path.abspath(path))
            if not os.path.isdir(parent):
                raise ConfigurationError(
                    f"Output directory not found: {parent}\n"
                    f"Parent of '{option}' ({path}).\n"
                    f"Create it first or choose a different output path."
                )

    def _get_int(self, section: str, option: str, default: Any, minimum: Optional[int] = None) -> Any:
        raw = self._get(section, option)
        if raw is None:
            return default
        try:
            value = int(raw)
        except ValueError:
            raise ConfigurationError(
                f"Invalid {option} value: must be an integer.\n"
                f"Current value: '{raw}'"
            )
        if minimum is not None and value < minimum:
            raise ConfigurationError(
                f"Invalid {option}: {value}\n"
                f"Must be an integer >= {minimum}."
            )
        return value

    def _get_float(self, section: str, option: str, default: Any) -> Any:
        raw = self._get(section, option)
        if raw is None:
            return default
        try:
            return float(raw)
        except ValueError:
            raise ConfigurationError(
                f"Invalid {option} value: must be a number.\n"
                f"Current value: '{raw}'"
            )

    def _get_bool(self, section: str, option: str, default: bool = False) -> bool:
        raw = self._get(section, option)
        if raw is None:
            return default
        if raw.lower() in TRUE_LIKE:
            return True
        if raw.lower() in FALSE_LIKE:
            return False
        raise ConfigurationError(
            f"Invalid {option} value: must be true or false.\n"
            f"Current value: '{raw}'"
        )


class MatchConfiguration(_BaseConfiguration):
    """Validated settings of a `fixelcorr match` run.

    [INPUT]   source_file, target_file
    [OUTPUT]  output_dir, cost_file, remapped_dir
    [MATCH]   algorithm, angle, max_origins, max_objectives, alpha, beta,
              min_hull_directions
    """

    def __init__(self, cfg_file: configparser.ConfigParser) -> None:
        super().__init__(cfg_file)

        self.source_path = self._require_file('INPUT', 'source_file', 'source fixel data file (NIfTI)')
        self.target_path = self._require_file('INPUT', 'target_file', 'target fixel data file (NIfTI)')

        self.output_dir = self._require_new(
            self._require('OUTPUT', 'output_dir', 'output fixel correspondence directory'), 'output_dir'
        )
        self.cost_path = self._require_new(self._get('OUTPUT', 'cost_file'), 'cost_file')
        self.remapped_dir = self._require_new(self._get('OUTPUT', 'remapped_dir'), 'remapped_dir')
        self._require_distinct_outputs({
            'output_dir': self.output_dir,
            'cost_file': self.cost_path,
            'remapped_dir': self.remapped_dir,
        })

        algorithm = (self._get('MATCH', 'algorithm') or 'ni2022').lower()
        if algorithm not in VALID_ALGORITHMS:
            raise ConfigurationError(
                f"Invalid algorithm: '{algorithm}'\n"
                f"Valid options are: {', '.join(VALID_ALGORITHMS)}\n"
                f"Update your configuration to use one of these algorithms."
            )
        self.algorithm = algorithm

        self.angle = self._get_float('MATCH', 'angle', None)
        self.max_origins = self._get_int('MATCH', 'max_origins', None, minimum=1)
        self.max_objectives = self._get_int('MATCH', 'max_objectives', None, minimum=1)
        self.min_hull_directions = self._get_int('MATCH', 'min_hull_directions', None, minimum=0)
        self.alpha = self._get_float('MATCH', 'alpha', None)
        self.beta = self._get_float('MATCH', 'beta', None)
        self._validate_applicability()

    def _validate_applicability(self) -> None:
        inapplicable: list[str] = []
        if self.algorithm == 'nearest':
            for option in ('max_origins', 'max_objectives', 'min_hull_directions', 'alpha', 'beta'):
                if getattr(self, option) is not None:
                    inapplicable.append(option)
            if self.cost_path is not None:
                inapplicable.append('cost_file')
        else:
            if self.angle is not None:
                inapplicable.append('angle')
            if self.algorithm != 'ni2022':
                for option in ('alpha', 'beta'):
                    if getattr(self, option) is not None:
                        inapplicable.append(option)
        if inapplicable:
            raise ConfigurationError(
                f"Options not applicable to algorithm '{self.algorithm}':\n\n"
                + "\n".join(f"- {o}" for o in inapplicable)
            )
        if (self.alpha is None) != (self.beta is None):
            raise ConfigurationError(
                "Constants for algorithm 'ni2022' must be given together.\n"
                "Set both 'alpha' and 'beta' in [MATCH], or neither."
            )

    def algorithm_params(self) -> dict:
        """Keyword arguments for the selected algorithm, omitting unset options."""
        candidates = {
            'max_angle': self.angle,
            'max_origins': self.max_origins,
            'max_objectives': self.max_objectives,
            'min_hull_directions': self.min_hull_directions,
            'alpha': self.alpha,
            'beta': self.beta,
        }
        return {k: v for k, v in candidates.items() if v is not None}


class ProjectConfiguration(_BaseConfiguration):
    """Validated settings of a `fixelcorr project` run.

    [INPUT]    data_file, correspondence_dir, weights_file
    [OUTPUT]   directory_out, data_out
    [PROJECT]  metric, fill, nan_many2one, nan_one2many
    """

    def __init__(self, cfg_file: configparser.ConfigParser) -> None:
        super().__init__(cfg_file)

        self.data_path = self._require_file('INPUT', 'data_file', 'source fixel data file (NIfTI)')
        self.correspondence_dir = self._require_file(
            'INPUT', 'correspondence_dir', 'fixel correspondence directory'
        )
        weights = self._get('INPUT', 'weights_file')
        self.weights_path = self._require_file('INPUT', 'weights_file', 'weights file') if weights else None

        self.directory_out = self._require('OUTPUT', 'directory_out', 'target fixel directory')
        if not os.path.isdir(self.directory_out):
            raise ConfigurationError(
                f"Target fixel directory not found: {self.directory_out}\n"
                f"Specified in configuration as 'directory_out'.\n"
                f"The output data file is written into an existing target fixel directory."
            )
        data_out = self._require('OUTPUT', 'data_out', 'output fixel data file name')
        if os.path.basename(data_out) != data_out:
            raise ConfigurationError(
                f"Invalid data_out: '{data_out}'\n"
                f"Give a file name only; it is written into 'directory_out'."
            )
        self.data_out = data_out
        self.output_path = self._require_new(os.path.join(self.directory_out, data_out), 'data_out')

        metric = self._require('PROJECT', 'metric', 'projection metric').lower()
        if metric not in VALID_METRICS:
            raise ConfigurationError(
                f"Invalid metric: '{metric}'\n"
                f"Valid options are: {', '.join(VALID_METRICS)}"
            )
        self.metric = metric
        self.fill = self._get_float('PROJECT', 'fill', 0.0)
        self.nan_many2one = self._get_bool('PROJECT', 'nan_many2one')
        self.nan_one2many = self._get_bool('PROJECT', 'nan_one2many')
