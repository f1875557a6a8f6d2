"""Domain packages - one subpackage per business area"""
