"""Command line interface for release-deployer"""
