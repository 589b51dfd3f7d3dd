from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
PROCESSED_DIR = DATA_DIR / "processed"

OUTPUTS_DIR = PROJECT_ROOT / "outputs"
FIGURES_DIR = OUTPUTS_DIR / "figures"
METRICS_DIR = OUTPUTS_DIR / "metrics"
TABLES_DIR = OUTPUTS_DIR / "tables"
MODELS_DIR = OUTPUTS_DIR / "models"
LOGS_DIR = OUTPUTS_DIR / "logs"
SPLITS_DIR = OUTPUTS_DIR / "splits"

SAMPLE_POOL_FILE = PROCESSED_DIR / "sample_pool.parquet"

# Run identifiers (used in outputs/ metadata)
EXPERIMENT_NAMESPACE = "pipesplit_v1"

TARGET_COL = "y"
POSITIVE_LABEL = 1

# Subset names, in the order they are carved off the pool.
TRAINING = "training"
POTATO = "potato"
VALIDATION = "validation"
TEST = "test"
CARVE_ORDER = [TEST, VALIDATION, POTATO, TRAINING]

# Default proportions per splitting case. Cases 5 and 6 resample the training
# subset, so only the training/test carve is fixed here.
CASE_PROPORTIONS = {
    1: {TRAINING: 0.75, TEST: 0.25},
    2: {TRAINING: 0.60, VALIDATION: 0.20, TEST: 0.20},
    3: {TRAINING: 0.60, POTATO: 0.15, TEST: 0.25},
    4: {TRAINING: 0.50, POTATO: 0.15, VALIDATION: 0.15, TEST: 0.20},
    5: {TRAINING: 0.75, TEST: 0.25},
    6: {TRAINING: 0.75, TEST: 0.25},
}
PROPORTION_TOLERANCE = 1e-6

# Frozen resampling protocol
CV_FOLDS = 5
RANDOM_SEEDS = [2026, 2027, 2028]

# Share of each analysis set (and of the final training set) held back for
# postprocessor estimation under case 6.
CASE6_POTATO_SIZE = 0.2

# Postprocessing defaults
CALIBRATION_DEFAULT = "none"  # choices: none, platt, isotonic, linear
CUTOFF_DEFAULT = "none"  # choices: none, fixed, j_index, f1
FIXED_CUTOFF = 0.5
POSTPROCESSOR_STRATEGY_DEFAULT = "potato"  # choices: potato, out_of_fold

# Minimum subset composition before a postprocessor fit is trusted.
MIN_GROUP_N = 50
MIN_GROUP_POS = 10
MIN_GROUP_NEG = 10
MIN_GROUP_EVENTRATE = None

PROB_BINS = 10
N_BOOT_DEFAULT = 500
