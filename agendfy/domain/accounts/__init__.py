"""Accounts domain - account documents, trial reconciliation and plan downgrade"""
