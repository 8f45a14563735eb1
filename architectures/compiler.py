# architectures/compiler.py
import torch
import torch.nn as nn
import torch.nn.functional as F
from utils.logger import get_logger

logger = get_logger("compiler", logfile="compiler.log")


class AddMerge(nn.Module):
    """Elementwise sum of every incoming branch."""

    def forward(self, *tensors):
        return torch.stack(tensors, dim=0).sum(dim=0)


class ZeroPadShortcut(nn.Module):
    """
    Parameter-free shortcut: strided subsampling, then zero channels appended
    so the output has `out_channels` channels.
    """

    def __init__(self, in_channels, out_channels, stride=1):
        super().__init__()
        assert out_channels >= in_channels, "zeropad shortcut cannot drop channels"
        self.in_channels = in_channels
        self.out_channels = out_channels
        self.stride = stride

    def forward(self, x):
        if self.stride > 1:
            x = x[:, :, ::self.stride, ::self.stride]
        return F.pad(x, (0, 0, 0, 0, 0, self.out_channels - self.in_channels))

    def extra_repr(self):
        return f"{self.in_channels}, {self.out_channels}, stride={self.stride}"


class CompiledModel(nn.Module):
    def __init__(self, graph):
        super().__init__()
        graph.assert_acyclic()
        if graph.output_node is None:
            raise ValueError("Graph has no output node")
        self.graph = graph
        self.layers = nn.ModuleDict()
        self._order = graph.topological_sort()
        self._consumers = {nid: 0 for nid in graph.nodes}
        for node in graph.nodes.values():
            for p in node.parents:
                self._consumers[p] += 1
        logger.info("Initializing CompiledModel")
        self._build()

    def _make_layer(self, node):
        op = node.op_type.lower()
        p = node.params
        if op == 'conv':
            return nn.Conv2d(
                p['in_channels'],
                p['out_channels'],
                kernel_size=p.get('kernel', 3),
                stride=p.get('stride', 1),
                padding=p.get('padding', 1),
                bias=p.get('bias', False),
            )
        if op == 'bn':
            return nn.BatchNorm2d(p['num_features'])
        if op == 'relu':
            # in place only when nothing else reads the parent's output
            shared = not node.parents or any(self._consumers[q] > 1 for q in node.parents)
            return nn.ReLU(inplace=not shared)
        if op == 'dropout':
            return nn.Dropout(p=p.get('p', 0.5))
        if op == 'maxpool':
            return nn.MaxPool2d(p['kernel'], stride=p.get('stride'), padding=p.get('padding', 0))
        if op == 'avgpool':
            return nn.AvgPool2d(p['kernel'], stride=p.get('stride'), padding=p.get('padding', 0))
        if op == 'frac_maxpool':
            ratio = p['ratio']
            return nn.FractionalMaxPool2d(p.get('kernel', 2), output_ratio=(ratio, ratio))
        if op == 'upsample':
            size = p['size']
            return nn.Upsample(size=(size, size), mode='bilinear', align_corners=True)
        if op == 'flatten':
            return nn.Flatten()
        if op == 'linear':
            return nn.Linear(p['in_features'], p['out_features'])
        if op == 'identity':
            return nn.Identity()
        if op == 'zeropad':
            return ZeroPadShortcut(p['in_channels'], p['out_channels'], stride=p.get('stride', 1))
        if op == 'add':
            return AddMerge()
        raise ValueError(f"Unknown op_type '{node.op_type}' for node {node.id}")

    def _build(self):
        logger.info("Building modules for graph with %d nodes", len(self.graph.nodes))
        for node_id in self._order:
            node = self.graph.nodes[node_id]
            key = str(node_id)
            try:
                self.layers[key] = self._make_layer(node)
            except (KeyError, ValueError, AssertionError):
                logger.exception("Failed creating module for node %s op=%s params=%s",
                                 key, node.op_type, node.params)
                raise
            logger.debug("Created %s node %s: %s", node.op_type, key, self.layers[key])

    def forward(self, x):
        cache = {}
        remaining = dict(self._consumers)
        output = self.graph.output_node

        for node_id in self._order:
            node = self.graph.nodes[node_id]
            parents = node.parents

            if not parents:
                inputs = (x,)
            else:
                missing = [p for p in parents if p not in cache]
                if missing:
                    logger.error("Node %s parent(s) %s not in cache. Available keys: %s",
                                 node_id, missing, list(cache.keys()))
                    raise KeyError(f"Missing parents for node {node_id}: {missing}")
                inputs = tuple(cache[p] for p in parents)

            layer = self.layers[str(node_id)]
            if len(inputs) > 1 and not isinstance(layer, AddMerge):
                raise ValueError(f"Node {node_id} (op={node.op_type}) has {len(inputs)} parents "
                                 "but is not a merge node")

            try:
                out = layer(*inputs)
            except RuntimeError:
                logger.exception("Layer forward failed at node %s op=%s input shapes=%s",
                                 node_id, node.op_type, [tuple(t.shape) for t in inputs])
                raise

            cache[node_id] = out
            logger.debug("Node %s produced output shape %s", node_id, tuple(out.shape))

            # drop activations whose consumers have all run
            for p in parents:
                remaining[p] -= 1
                if remaining[p] == 0 and p != output:
                    del cache[p]

        if output not in cache:
            logger.error("Output node %s not computed. Cache keys: %s", output, list(cache.keys()))
            raise KeyError("Output not computed")

        return cache[output]
