# architectures/model_setup.py
import torch
import torch.nn as nn
from architectures.wrn_prm import create_model, num_classes
from utils.logger import get_logger

logger = get_logger("model_setup", logfile="model_setup.log")


def get_device():
    return torch.device('cuda' if torch.cuda.is_available() else 'cpu')


def unwrap(model):
    return model.module if isinstance(model, nn.DataParallel) else model


def reset_classifier(model, n_classes):
    """
    Swap the final linear layer of a CompiledModel for a fresh one with
    `n_classes` outputs (zero bias).
    """
    graph = model.graph
    node_id = graph.output_node
    node = graph.nodes[node_id]
    if node.op_type != 'linear':
        raise ValueError(f"Output node {node_id} is {node.op_type}, not linear")
    in_features = node.params['in_features']
    node.params['out_features'] = n_classes
    fc = nn.Linear(in_features, n_classes)
    with torch.no_grad():
        fc.bias.zero_()
    model.layers[str(node_id)] = fc
    logger.info("Replaced classifier: %d -> %d classes", in_features, n_classes)
    return model


def _configure_cudnn(mode):
    if mode == 'deterministic':
        torch.backends.cudnn.deterministic = True
        torch.backends.cudnn.benchmark = False
    elif mode == 'fastest':
        torch.backends.cudnn.benchmark = True


def setup(opt, checkpoint=None):
    """
    Build (or restore) the model for `opt` and return (model, criterion).
    """
    if checkpoint is not None:
        model = create_model(opt)
        logger.info("=> Resuming model from %s", checkpoint['model_file'])
        state = torch.load(checkpoint['model_file'], map_location='cpu')
        model.load_state_dict(state)
    elif opt.retrain:
        model = create_model(opt, n_classes=num_classes(opt.dataset))
        logger.info("=> Loading model from %s", opt.retrain)
        state = torch.load(opt.retrain, map_location='cpu')
        model.load_state_dict(state)
    else:
        logger.info("=> Creating model from options: dataset=%s depth=%d widen=%d",
                    opt.dataset, opt.depth, opt.widen_factor)
        model = create_model(opt, n_classes=num_classes(opt.dataset) if opt.reset_classifier else None)

    if opt.reset_classifier and checkpoint is None:
        reset_classifier(model, opt.n_classes)

    _configure_cudnn(opt.cudnn)

    device = get_device()
    model = model.to(device)
    if opt.n_gpu > 1 and torch.cuda.is_available():
        logger.info("Wrapping model in DataParallel over %d GPUs", opt.n_gpu)
        model = nn.DataParallel(model, device_ids=list(range(opt.n_gpu)))

    criterion = nn.CrossEntropyLoss().to(device)
    return model, criterion
