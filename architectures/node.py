# architectures/node.py

OP_TYPES = (
    'conv', 'bn', 'relu', 'dropout',
    'maxpool', 'avgpool', 'frac_maxpool', 'upsample',
    'flatten', 'linear', 'identity', 'zeropad', 'add',
)


class Node:
    def __init__(self, node_id, op_type, params=None, parents=None):
        """
        node_id : int
        op_type : str  (one of OP_TYPES)
        params  : dict (channels, kernel, stride, ratio, size, ...)
        parents : list[int]; empty means the node reads the graph input
        """
        if op_type not in OP_TYPES:
            raise ValueError(f"Unknown op_type '{op_type}' for node {node_id}")
        self.id = node_id
        self.op_type = op_type
        self.params = dict(params or {})
        self.parents = list(parents or [])

    @property
    def out_channels(self):
        for key in ('out_channels', 'num_features', 'out_features'):
            if key in self.params:
                return self.params[key]
        return None

    def __repr__(self):
        return f"Node(id={self.id}, op={self.op_type}, parents={self.parents})"
