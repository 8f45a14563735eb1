# architectures/graph.py
from collections import defaultdict, deque

from architectures.node import Node


class ArchitectureGraph:
    def __init__(self):
        self.nodes = {}          # node_id -> Node
        self.output_node = None

    def __len__(self):
        return len(self.nodes)

    def next_id(self):
        if not self.nodes:
            return 0
        return max(self.nodes.keys()) + 1

    def add_node(self, node):
        assert node.id not in self.nodes, f"Duplicate node id {node.id}"
        for p in node.parents:
            assert p in self.nodes, f"Unknown parent {p} for node {node.id}"
        self.nodes[node.id] = node

    def add(self, op_type, params=None, parents=()):
        """
        Append a node under the next free id and return that id.
        """
        node_id = self.next_id()
        self.add_node(Node(node_id, op_type, params, parents=list(parents)))
        return node_id

    def set_output(self, node_id):
        assert node_id in self.nodes, "Output node must exist"
        self.output_node = node_id

    def children(self, node_id):
        return [nid for nid, node in self.nodes.items() if node_id in node.parents]

    def find_nodes(self, op_type):
        return [nid for nid, node in self.nodes.items() if node.op_type == op_type]

    def topological_sort(self):
        """
        Kahn's algorithm for topological sorting.
        Raises AssertionError if a cycle exists.
        """
        indegree = defaultdict(int)
        children = defaultdict(list)

        for node_id, node in self.nodes.items():
            for p in node.parents:
                children[p].append(node_id)
                indegree[node_id] += 1

        queue = deque([nid for nid in self.nodes if indegree[nid] == 0])

        order = []
        while queue:
            u = queue.popleft()
            order.append(u)
            for v in children[u]:
                indegree[v] -= 1
                if indegree[v] == 0:
                    queue.append(v)

        assert len(order) == len(self.nodes), "Graph has a cycle!"
        return order

    def assert_acyclic(self):
        try:
            self.topological_sort()
        except AssertionError:
            raise RuntimeError("Invalid architecture: cycle detected")

    def __repr__(self):
        lines = ["ArchitectureGraph:"]
        for nid in sorted(self.nodes):
            n = self.nodes[nid]
            lines.append(
                f"  Node {nid}: op={n.op_type}, params={n.params}, parents={n.parents}"
            )
        lines.append(f"  Output node: {self.output_node}")
        return "\n".join(lines)
