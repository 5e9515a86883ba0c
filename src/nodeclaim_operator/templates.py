"""Cloud-init templates for Scaleway GPU nodes."""

import shlex

KUBERNETES_PACKAGES = ["kubelet", "kubeadm", "kubectl"]


def _quote(value):
    return shlex.quote(str(value))


def create_node_labels(capacity_type, instance_type, extra_labels=None):
    """Labels the kubelet registers the node with."""
    labels = {
        "karpenter.sh/capacity-type": capacity_type,
        "node.kubernetes.io/instance-type": instance_type,
    }
    if extra_labels:
        labels.update(extra_labels)
    return labels


def generate_user_data(
    cluster_name,
    token,
    cluster_endpoint,
    ca_cert_hash=None,
    node_labels=None,
    packages=None,
):
    """Render the cloud-init script that joins a new node to the cluster."""
    packages = packages or KUBERNETES_PACKAGES

    lines = [
        "#!/bin/bash",
        "set -euo pipefail",
        "",
        "# Node bootstrap",
        f"CLUSTER_NAME={_quote(cluster_name)}",
        "apt-get update",
        "apt-get install -y " + " ".join(_quote(p) for p in packages),
        "",
    ]

    if node_labels:
        joined = ",".join(f"{k}={v}" for k, v in sorted(node_labels.items()))
        lines.append(
            "echo " + _quote(f"KUBELET_EXTRA_ARGS=--node-labels={joined}") + " > /etc/default/kubelet"
        )
        lines.append("")

    join = ["kubeadm", "join", _quote(cluster_endpoint), "--token", _quote(token)]
    if ca_cert_hash:
        join += ["--discovery-token-ca-cert-hash", _quote(ca_cert_hash)]
    else:
        join.append("--discovery-token-unsafe-skip-ca-verification")

    lines.append("# Join the Kubernetes cluster")
    lines.append(" ".join(join))

    return "\n".join(lines) + "\n"
