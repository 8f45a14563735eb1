# architectures/blocks.py
from typing import Literal, get_args

from utils.logger import get_logger

logger = get_logger("blocks", logfile="blocks.log")

ShortcutType = Literal["A", "B", "C"]
SHORTCUT_TYPES = get_args(ShortcutType)


def pyramid_scales(cardinality=4):
    """
    Fractional pooling ratio of each pyramid scale: 2^(-i/C) for i = 1..C.
    """
    sc = 2 ** (1.0 / cardinality)
    return [1.0 / sc ** i for i in range(1, cardinality + 1)]


def bn_relu(graph, x, channels):
    bn = graph.add('bn', {'num_features': channels}, parents=[x])
    return graph.add('relu', {}, parents=[bn])


def conv(graph, x, in_c, out_c, kernel, stride=1, padding=0):
    return graph.add('conv', {
        'in_channels': in_c,
        'out_channels': out_c,
        'kernel': kernel,
        'stride': stride,
        'padding': padding,
    }, parents=[x])


def pyramid(graph, x, planes, cardinality, resolution):
    """
    Split `planes` channels across `cardinality` scales: each scale pools at its
    own fractional ratio, convolves, and is upsampled back to `resolution`.
    The scales are summed.
    """
    scales = []
    for ratio in pyramid_scales(cardinality):
        s = graph.add('frac_maxpool', {'kernel': 2, 'ratio': ratio}, parents=[x])
        s = conv(graph, s, planes, planes, 3, stride=1, padding=1)
        s = graph.add('upsample', {'size': resolution}, parents=[s])
        scales.append(s)
    return graph.add('add', {}, parents=scales)


def shortcut(graph, x, n_input_plane, n_output_plane, stride, shortcut_type='B'):
    if shortcut_type not in SHORTCUT_TYPES:
        raise ValueError(f"invalid shortcut type: {shortcut_type}")
    matches = n_input_plane == n_output_plane and stride == 1
    if shortcut_type == 'C' or (shortcut_type == 'B' and not matches):
        return conv(graph, x, n_input_plane, n_output_plane, 1, stride=stride, padding=0)
    if matches:
        return graph.add('identity', {}, parents=[x])
    return graph.add('zeropad', {
        'in_channels': n_input_plane,
        'out_channels': n_output_plane,
        'stride': stride,
    }, parents=[x])


def wide_basic(graph, x, n_input_plane, n_output_plane, stride, resolution,
               dropout=0.0, shortcut_type='B', cardinality=4):
    """
    Append one pre-activation residual block with a pyramid branch.

    Output = convs(x) + pyramid(x) + shortcut(x), merged by an `add` node.
    When the block keeps its width, the leading BN-ReLU belongs to the conv
    branch alone; otherwise it runs once and feeds all three branches.

    x          : id of the node feeding the block
    resolution : spatial size of the block input (the pyramid upsamples to it)

    Returns the id of the block's `add` node.
    """
    n_bottleneck_plane = n_output_plane
    planes = n_bottleneck_plane // cardinality
    if planes < 1:
        raise ValueError(f"{n_bottleneck_plane} channels cannot be split over {cardinality} scales")

    # Main branch
    if n_input_plane == n_output_plane:
        branch_in = x
        h = bn_relu(graph, x, n_input_plane)
    else:
        branch_in = bn_relu(graph, x, n_input_plane)
        h = branch_in
    h = conv(graph, h, n_input_plane, n_bottleneck_plane, 3, stride=stride, padding=1)
    h = bn_relu(graph, h, n_bottleneck_plane)
    if dropout > 0:
        h = graph.add('dropout', {'p': dropout}, parents=[h])
    convs = conv(graph, h, n_bottleneck_plane, n_bottleneck_plane, 3, stride=1, padding=1)

    # Pyramid
    p = bn_relu(graph, branch_in, n_input_plane)
    p = conv(graph, p, n_input_plane, planes, 1, stride=stride)
    p = bn_relu(graph, p, planes)
    p = pyramid(graph, p, planes, cardinality, resolution)
    p = bn_relu(graph, p, planes)
    pyra = conv(graph, p, planes, n_bottleneck_plane, 1, stride=stride)

    # Shortcut
    short = shortcut(graph, branch_in, n_input_plane, n_output_plane, stride, shortcut_type)

    out = graph.add('add', {}, parents=[convs, pyra, short])
    logger.debug("wide_basic %d -> %d stride=%d res=%d: nodes up to %d",
                 n_input_plane, n_output_plane, stride, resolution, out)
    return out
