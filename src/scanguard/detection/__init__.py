"""
Image detection chain: perceptual-hash pre-filter, external classifier,
decision policy and the bounded scan scheduler in front of them.
"""
