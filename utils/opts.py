# utils/opts.py
from dataclasses import dataclass
from typing import Literal, get_args

import tyro

from architectures.blocks import SHORTCUT_TYPES, ShortcutType
from architectures.wrn_prm import DATASETS, Dataset, num_classes

CudnnMode = Literal["default", "deterministic", "fastest"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass
class Options:
    """
    Run options for building, profiling and training a WRN-PRM model.

    Attributes:
        dataset: imagenet | cifar10 | cifar100
        depth: network depth (18/34 for imagenet, 6n+4 for cifar)
        widen_factor: multiplier on per-stage channel counts
        dropout: dropout rate between the two convs of a block (0 disables)
        shortcut_type: A (zero-pad), B (projection when needed), C (always projection)
        resume: directory holding latest.pth; empty starts fresh
        save: directory checkpoints are written to
        retrain: path to a model state dict to start from
        reset_classifier: replace the final linear layer with n_classes outputs
        n_classes: number of output classes; 0 derives it from the dataset
        cudnn: default | deterministic | fastest
        manual_seed: seed for random, numpy and torch
        n_epochs: epochs to train; 0 only reports ops and parameters
    """
    # Model
    dataset: Dataset = "cifar10"
    depth: int = 28
    widen_factor: int = 10
    dropout: float = 0.0
    shortcut_type: ShortcutType = "B"
    # Checkpointing
    resume: str = ""
    save: str = "checkpoints"
    retrain: str = ""
    reset_classifier: bool = False
    n_classes: int = 0
    # Runtime
    cudnn: CudnnMode = "default"
    manual_seed: int = 0
    n_gpu: int = 1
    n_threads: int = 2 # data loading workers
    # Training
    n_epochs: int = 0
    batch_size: int = 128
    lr: float = 0.1
    momentum: float = 0.9
    weight_decay: float = 5e-4
    data: str = "data"
    # Logging
    log_dir: str = "logs"
    log_level: LogLevel = "INFO"

    def __post_init__(self):
        # choices are enforced by tyro on the command line, not on direct construction
        if self.dataset not in DATASETS:
            raise ValueError(f"invalid dataset: {self.dataset}")
        if self.cudnn not in get_args(CudnnMode):
            raise ValueError(f"invalid cudnn mode: {self.cudnn}")
        if self.shortcut_type not in SHORTCUT_TYPES:
            raise ValueError(f"invalid shortcut type: {self.shortcut_type}")
        if self.log_level not in get_args(LogLevel):
            raise ValueError(f"invalid log level: {self.log_level}")
        if not 0.0 <= self.dropout < 1.0:
            raise ValueError(f"dropout must be in [0, 1): {self.dropout}")
        if self.widen_factor < 1:
            raise ValueError(f"widen_factor must be positive: {self.widen_factor}")
        if self.n_classes == 0:
            self.n_classes = num_classes(self.dataset)


def parse(args=None):
    """
    Parse command-line options. Invalid options make tyro print its error
    and raise SystemExit with a non-zero code.
    """
    return tyro.cli(Options, args=args)
