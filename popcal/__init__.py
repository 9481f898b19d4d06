"""popcal - an optimisation engine for calibrating simulation models."""

__version__ = "0.1.0"

# Calibration driver
from .calibration import calibrate, run_search

# Configuration and option files
from .config import (
    BFGSConfig,
    HookeConfig,
    OptInfo,
    SearchConfig,
    WolfeBFGSConfig,
    parse_optinfo,
    read_optinfo,
)

# Best-point and parameter files
from .io import (
    BestPointStore,
    ParameterTable,
    parse_parameter_table,
    read_best_point,
    read_parameter_table,
    write_best_point,
    write_parameter_table,
)

# Logging
from .logging import configure_logging, get_logger, log_to_file, set_log_level

# Objective functions
from .objective import (
    FunctionObjective,
    ObjectiveFunction,
    ScaledObjective,
    SubsetObjective,
    TorchObjective,
    as_objective,
)

# Search algorithms
from .optimize import (
    CancellationToken,
    SearchReport,
    Termination,
    bfgs,
    bfgs_wolfe,
    hooke_jeeves,
    interrupt_on_sigint,
)

__all__ = [
    "BFGSConfig",
    "BestPointStore",
    "CancellationToken",
    "FunctionObjective",
    "HookeConfig",
    "ObjectiveFunction",
    "OptInfo",
    "ParameterTable",
    "ScaledObjective",
    "SearchConfig",
    "SearchReport",
    "SubsetObjective",
    "Termination",
    "TorchObjective",
    "WolfeBFGSConfig",
    "__version__",
    "as_objective",
    "bfgs",
    "bfgs_wolfe",
    "calibrate",
    "configure_logging",
    "get_logger",
    "hooke_jeeves",
    "interrupt_on_sigint",
    "log_to_file",
    "parse_optinfo",
    "parse_parameter_table",
    "read_best_point",
    "read_optinfo",
    "read_parameter_table",
    "run_search",
    "set_log_level",
    "write_best_point",
    "write_parameter_table",
]
