# profiling/counters.py
import torch
import torch.nn as nn
from architectures.compiler import AddMerge
from architectures.wrn_prm import input_resolution
from utils.logger import get_logger

logger = get_logger("counters", logfile="counters.log")


def count_parameters(model):
    total = sum(p.numel() for p in model.parameters())
    trainable = sum(p.numel() for p in model.parameters() if p.requires_grad)
    logger.info("Parameter count: total=%d trainable=%d", total, trainable)
    return total


def sample_input(dataset, device='cpu'):
    res = input_resolution(dataset)
    return torch.randn(1, 3, res, res, device=device)


def _kernel_area(kernel_size):
    if isinstance(kernel_size, int):
        return kernel_size * kernel_size
    return kernel_size[0] * kernel_size[1]


def _conv_ops(m, inp, out):
    # multiply-adds per output element
    return out.numel() * _kernel_area(m.kernel_size) * (m.in_channels // m.groups)


def _linear_ops(m, inp, out):
    return out.numel() * m.in_features


def _bn_ops(m, inp, out):
    # normalize + affine
    return 2 * inp[0].numel()


def _elementwise_ops(m, inp, out):
    return inp[0].numel()


def _pool_ops(m, inp, out):
    return out.numel() * _kernel_area(m.kernel_size)


def _upsample_ops(m, inp, out):
    # bilinear: four taps per output element
    return 4 * out.numel()


def _add_ops(m, inp, out):
    return out.numel() * (len(inp) - 1)


_OP_RULES = (
    (nn.Conv2d, _conv_ops),
    (nn.Linear, _linear_ops),
    (nn.BatchNorm2d, _bn_ops),
    (nn.ReLU, _elementwise_ops),
    ((nn.MaxPool2d, nn.AvgPool2d, nn.FractionalMaxPool2d), _pool_ops),
    (nn.Upsample, _upsample_ops),
    (AddMerge, _add_ops),
)


def count_ops(model, sample):
    """
    Count floating-point operations of one forward pass on `sample`.

    Conv and linear layers count multiply-adds; batch norm counts two ops per
    element, ReLU one, pooling one per window element, bilinear upsampling
    four per output element and the additive merges one per element for each
    extra branch.

    Returns (total, layer_ops) where layer_ops maps module name -> ops.
    """
    if isinstance(model, nn.DataParallel):
        model = model.module
    hooks = []
    layer_ops = {}

    def make_hook(name, rule):
        def hook(module, inp, out):
            ops = int(rule(module, inp, out))
            layer_ops[name] = layer_ops.get(name, 0) + ops
            logger.debug("%s (%s): %d ops", name, type(module).__name__, ops)
        return hook

    for name, module in model.named_modules():
        for types, rule in _OP_RULES:
            if isinstance(module, types):
                hooks.append(module.register_forward_hook(make_hook(name, rule)))
                break

    was_training = model.training
    model.eval()
    try:
        with torch.no_grad():
            model(sample)
    except RuntimeError:
        logger.exception("Failed to run op counting forward pass")
        raise
    finally:
        for h in hooks:
            h.remove()
        model.train(was_training)

    total = sum(layer_ops.values())
    logger.info("Counted ops: total=%d over %d layers", total, len(layer_ops))
    return total, layer_ops
