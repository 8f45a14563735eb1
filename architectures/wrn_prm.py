# architectures/wrn_prm.py
"""
Wide residual network with a pyramid branch in every block (WRN-PRM).

The network is assembled as an ArchitectureGraph and compiled into a
CompiledModel. ImageNet models use a 7x7 stem and four stages whose block
counts come from IMAGENET_CFG; CIFAR models use a 3x3 stem and three stages
of (depth - 4) / 6 blocks each.
"""
from typing import Literal, get_args

from architectures.blocks import wide_basic
from architectures.compiler import CompiledModel
from architectures.graph import ArchitectureGraph
from architectures.initialization import initialize
from utils.logger import get_logger

logger = get_logger("wrn_prm", logfile="wrn_prm.log")

IMAGENET_CFG = {
    18: (2, 2, 2, 2),
    34: (3, 4, 6, 3),
}

Dataset = Literal["imagenet", "cifar10", "cifar100"]
DATASETS = get_args(Dataset)


def _check_dataset(dataset):
    if dataset not in DATASETS:
        raise ValueError(f"invalid dataset: {dataset}")


def num_classes(dataset):
    _check_dataset(dataset)
    return {'imagenet': 1000, 'cifar10': 10, 'cifar100': 100}[dataset]


def input_resolution(dataset):
    _check_dataset(dataset)
    return 224 if dataset == 'imagenet' else 32


def stage_widths(dataset, widen_factor):
    _check_dataset(dataset)
    k = widen_factor
    if dataset == 'imagenet':
        return [64, 64 * k, 128 * k, 256 * k, 512 * k]
    return [16, 16 * k, 32 * k, 64 * k]


def blocks_per_stage(dataset, depth):
    _check_dataset(dataset)
    if dataset == 'imagenet':
        if depth not in IMAGENET_CFG:
            raise ValueError(f"Invalid depth: {depth}")
        return list(IMAGENET_CFG[depth])
    if depth < 4:
        raise ValueError(f"depth should be at least 4: {depth}")
    if (depth - 4) % 6 != 0:
        raise ValueError("depth should be 6n+4")
    # n = 0 still builds the leading block of every stage
    n = (depth - 4) // 6
    return [n, n, n]


def layer(graph, x, n_input_plane, n_output_plane, count, stride, resolution,
          dropout=0.0, shortcut_type='B'):
    """
    Stack `count` blocks on one stage; only the first changes width and stride.
    Returns (output node id, spatial resolution after the stage).
    """
    x = wide_basic(graph, x, n_input_plane, n_output_plane, stride, resolution,
                   dropout=dropout, shortcut_type=shortcut_type)
    resolution = resolution // stride
    for _ in range(1, count):
        x = wide_basic(graph, x, n_output_plane, n_output_plane, 1, resolution,
                       dropout=dropout, shortcut_type=shortcut_type)
    return x, resolution


def build_graph(opt, n_classes=None):
    depth = opt.depth
    dataset = opt.dataset
    shortcut_type = getattr(opt, 'shortcut_type', 'B') or 'B'
    dropout = getattr(opt, 'dropout', 0.0) or 0.0

    counts = blocks_per_stage(dataset, depth)
    n_stages = stage_widths(dataset, opt.widen_factor)
    n_classes = n_classes or getattr(opt, 'n_classes', 0) or num_classes(dataset)
    resolution = input_resolution(dataset)

    g = ArchitectureGraph()
    if dataset == 'imagenet':
        x = g.add('conv', {'in_channels': 3, 'out_channels': 64, 'kernel': 7,
                           'stride': 2, 'padding': 3})
        x = g.add('bn', {'num_features': 64}, parents=[x])
        x = g.add('relu', {}, parents=[x])
        x = g.add('maxpool', {'kernel': 3, 'stride': 2, 'padding': 1}, parents=[x])
        resolution //= 4
        strides = (1, 2, 2, 2)
    else:
        x = g.add('conv', {'in_channels': 3, 'out_channels': n_stages[0], 'kernel': 3,
                           'stride': 1, 'padding': 1})
        strides = (1, 2, 2)

    for i, (count, stride) in enumerate(zip(counts, strides)):
        x, resolution = layer(g, x, n_stages[i], n_stages[i + 1], count, stride, resolution,
                              dropout=dropout, shortcut_type=shortcut_type)
        logger.debug("Stage %d: %d blocks, %d channels, resolution %d",
                     i + 1, count, n_stages[i + 1], resolution)

    x = g.add('bn', {'num_features': n_stages[-1]}, parents=[x])
    x = g.add('relu', {}, parents=[x])
    x = g.add('avgpool', {'kernel': resolution, 'stride': 1}, parents=[x])
    x = g.add('flatten', {}, parents=[x])
    x = g.add('linear', {'in_features': n_stages[-1], 'out_features': n_classes}, parents=[x])
    g.set_output(x)

    logger.info("Built WRN-PRM graph: dataset=%s depth=%d widen=%d blocks=%s nodes=%d",
                dataset, depth, opt.widen_factor, counts, len(g))
    return g


def create_model(opt, n_classes=None):
    graph = build_graph(opt, n_classes=n_classes)
    model = CompiledModel(graph)
    return initialize(model)
