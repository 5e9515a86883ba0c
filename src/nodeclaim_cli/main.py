#!/usr/bin/env python3
"""
NodeClaim Operator CLI

Inspect Scaleway GPU NodeClaims the way the operator sees them: derived
lifecycle state, instance type translation, rendered cloud-init and the
Scaleway instances attributed to a claim.
"""

import argparse
import json
import sys

from kubernetes.client.rest import ApiException

from nodeclaim_operator.config import load_config_or_default
from nodeclaim_operator.crd import ClaimKey, derive_state
from nodeclaim_operator.errors import ClaimNotFoundError, OperatorError, ValidationError
from nodeclaim_operator.instance_types import InstanceTypeTranslator
from nodeclaim_operator.k8s import ClaimStore, get_clients, read_bootstrap_token
from nodeclaim_operator.provider import ScalewayGateway, claim_uid_tag
from nodeclaim_operator.templates import create_node_labels, generate_user_data


def _claim_store(cfg):
    _, custom_api = get_clients()
    return ClaimStore(custom_api, cfg.claim)


def _describe(claim, cfg, translator):
    """Summarize a claim as a dict."""
    state = derive_state(claim, cfg.capacity_type, cfg.finalizer)
    info = {
        "name": claim.name,
        "namespace": claim.namespace,
        "uid": claim.uid,
        "state": state.value,
        "deletionTimestamp": claim.deletion_timestamp,
        "finalizers": claim.finalizers,
    }
    try:
        instance_type = claim.resolve_instance_type()
        info["instanceType"] = instance_type
        info["commercialType"] = translator.translate(instance_type)
    except ValidationError as e:
        info["error"] = str(e)
    return info


def cmd_list(args, cfg):
    """List NodeClaims with their derived state."""
    translator = InstanceTypeTranslator(cfg.instance_types)
    try:
        claims = _claim_store(cfg).list()
    except ApiException as e:
        print(f"✗ Error listing nodeclaims: {e.reason}", file=sys.stderr)
        return 1

    if not args.all:
        claims = [c for c in claims if c.has_capacity_type(cfg.capacity_type)]

    if not claims:
        print("No nodeclaims found")
        return 0

    print(f"{'NAME':<40} {'STATE':<20} {'INSTANCE TYPE':<15} {'COMMERCIAL TYPE':<15}")
    for claim in claims:
        info = _describe(claim, cfg, translator)
        print(
            f"{info['name']:<40} {info['state']:<20} "
            f"{info.get('instanceType', '-'):<15} {info.get('commercialType', '-'):<15}"
        )
    return 0


def cmd_get(args, cfg):
    """Show one NodeClaim as JSON."""
    translator = InstanceTypeTranslator(cfg.instance_types)
    key = ClaimKey(name=args.name, namespace=args.namespace)
    try:
        claim = _claim_store(cfg).get(key)
    except ClaimNotFoundError:
        print(f"✗ NodeClaim '{key}' not found", file=sys.stderr)
        return 1

    print(json.dumps(_describe(claim, cfg, translator), indent=2))
    return 0


def cmd_types(args, cfg):
    """Print the instance type table."""
    translator = InstanceTypeTranslator(cfg.instance_types)
    for instance_type, commercial_type in translator.items():
        print(f"{instance_type:<15} {commercial_type}")
    return 0


def cmd_translate(args, cfg):
    """Translate one instance type."""
    translator = InstanceTypeTranslator(cfg.instance_types)
    try:
        print(translator.translate(args.instance_type))
    except ValidationError as e:
        print(f"✗ {e}", file=sys.stderr)
        print(f"  Supported: {', '.join(translator.supported_types())}", file=sys.stderr)
        return 1
    return 0


def cmd_user_data(args, cfg):
    """Render the cloud-init script for an instance type."""
    bootstrap = cfg.bootstrap
    token = args.token
    if token is None:
        v1, _ = get_clients()
        try:
            token = read_bootstrap_token(v1, bootstrap)
        except OperatorError as e:
            print(f"✗ {e}", file=sys.stderr)
            return 1

    labels = create_node_labels(cfg.capacity_type, args.instance_type, bootstrap.node_labels)
    sys.stdout.write(
        generate_user_data(
            cluster_name=bootstrap.cluster_name,
            token=token,
            cluster_endpoint=bootstrap.cluster_endpoint,
            ca_cert_hash=bootstrap.ca_cert_hash,
            node_labels=labels,
        )
    )
    return 0


def cmd_instances(args, cfg):
    """List Scaleway instances attributed to a NodeClaim."""
    key = ClaimKey(name=args.name, namespace=args.namespace)
    try:
        claim = _claim_store(cfg).get(key)
    except ClaimNotFoundError:
        print(f"✗ NodeClaim '{key}' not found", file=sys.stderr)
        return 1

    gateway = ScalewayGateway.from_config(cfg.scaleway)
    instances = gateway.find_instances(claim_uid_tag(claim.uid))
    if not instances:
        print(f"No instances for nodeclaim '{key}'")
        return 0

    print(f"{'ID':<38} {'STATE':<18} {'TYPE':<15} {'ZONE':<10}")
    for instance in instances:
        print(f"{instance.id:<38} {instance.state:<18} {instance.commercial_type:<15} {instance.zone:<10}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        description="Inspect Scaleway GPU NodeClaims",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  nodeclaimctl list
  nodeclaimctl get gpu-pool-abc12
  nodeclaimctl translate L40s
  nodeclaimctl user-data --instance-type l4 --token abcdef.1234567890abcdef
""",
    )
    parser.add_argument("--config", help="Path to the operator config file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List nodeclaims")
    list_parser.add_argument("--all", action="store_true", help="Include other capacity types")
    list_parser.set_defaults(func=cmd_list)

    get_parser = subparsers.add_parser("get", help="Show a nodeclaim")
    get_parser.add_argument("name")
    get_parser.add_argument("-n", "--namespace", default=None)
    get_parser.set_defaults(func=cmd_get)

    types_parser = subparsers.add_parser("types", help="Show the instance type table")
    types_parser.set_defaults(func=cmd_types)

    translate_parser = subparsers.add_parser("translate", help="Translate an instance type")
    translate_parser.add_argument("instance_type")
    translate_parser.set_defaults(func=cmd_translate)

    user_data_parser = subparsers.add_parser("user-data", help="Render node cloud-init")
    user_data_parser.add_argument("--instance-type", required=True)
    user_data_parser.add_argument("--token", default=None, help="Bootstrap token (default: from secret)")
    user_data_parser.set_defaults(func=cmd_user_data)

    instances_parser = subparsers.add_parser("instances", help="List instances owned by a nodeclaim")
    instances_parser.add_argument("name")
    instances_parser.add_argument("-n", "--namespace", default=None)
    instances_parser.set_defaults(func=cmd_instances)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    cfg = load_config_or_default(args.config)
    return args.func(args, cfg)


if __name__ == "__main__":
    sys.exit(main())
