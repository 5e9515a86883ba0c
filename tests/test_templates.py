"""Tests for the node cloud-init template."""

import shlex
import shutil
import subprocess

import pytest

from nodeclaim_operator.templates import create_node_labels, generate_user_data

TOKEN = "abcdef.1234567890abcdef"


def test_script_layout():
    script = generate_user_data("my-kubernetes-cluster", TOKEN, "10.0.0.1:6443")
    lines = script.splitlines()

    assert lines[0] == "#!/bin/bash"
    assert "apt-get update" in lines
    assert "apt-get install -y kubelet kubeadm kubectl" in lines
    join = lines[-1]
    assert join.startswith("kubeadm join 10.0.0.1:6443 --token abcdef.1234567890abcdef")
    assert lines.index("apt-get update") < lines.index(join)
    assert script.endswith("\n")


def test_ca_hash_replaces_unsafe_skip():
    without = generate_user_data("c", TOKEN, "10.0.0.1:6443")
    with_hash = generate_user_data("c", TOKEN, "10.0.0.1:6443", ca_cert_hash="sha256:abc")

    assert "--discovery-token-unsafe-skip-ca-verification" in without
    assert "--discovery-token-ca-cert-hash sha256:abc" in with_hash
    assert "unsafe" not in with_hash


def test_values_are_shell_quoted():
    script = generate_user_data("c", "tok; rm -rf /", "<cluster-endpoint>")
    join = script.splitlines()[-1]

    assert shlex.split(join)[:5] == ["kubeadm", "join", "<cluster-endpoint>", "--token", "tok; rm -rf /"]


def test_node_labels_are_written_to_kubelet_defaults():
    labels = create_node_labels("scaleway-gpu", "l4", {"team": "ml"})
    script = generate_user_data("c", TOKEN, "10.0.0.1:6443", node_labels=labels)

    assert (
        "KUBELET_EXTRA_ARGS=--node-labels=karpenter.sh/capacity-type=scaleway-gpu,"
        "node.kubernetes.io/instance-type=l4,team=ml"
    ) in script
    assert "/etc/default/kubelet" in script


def test_generation_is_deterministic():
    assert generate_user_data("c", TOKEN, "e") == generate_user_data("c", TOKEN, "e")


def _bash_syntax_ok(script):
    result = subprocess.run(["bash", "-n"], input=script, capture_output=True, text=True)
    return result.returncode == 0, result.stderr


@pytest.mark.skipif(shutil.which("bash") is None, reason="bash not available")
@pytest.mark.parametrize(
    "cluster_name, token, endpoint, labels",
    [
        ("my-kubernetes-cluster", TOKEN, "10.0.0.1:6443", None),
        ("prod\ncluster", TOKEN, "10.0.0.1:6443", None),
        ("it's \"quoted\" $(whoami)", "tok'\n`id`", "<cluster-endpoint>", None),
        ("c", TOKEN, "host:6443; reboot", {"team": "ml'\nrm -rf /", "a\nb": "$HOME"}),
    ],
)
def test_script_is_valid_shell_for_any_input(cluster_name, token, endpoint, labels):
    script = generate_user_data(cluster_name, token, endpoint, ca_cert_hash="sha256:'x\n", node_labels=labels)

    ok, stderr = _bash_syntax_ok(script)

    assert ok, stderr
