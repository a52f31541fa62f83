"""
Infraflow - apply/destroy orchestrator for Terraform-managed clusters.

Sequences terraform, kubectl and the AWS APIs into guarded apply and
destroy workflows, reaping controller-created load balancers before
teardown and keeping the local kubeconfig in step with remote state.
"""

__version__ = "0.1.0"
