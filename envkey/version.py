"""Envkey Meta information.
   Envkey keeps team secrets encrypted in a single file next to your code.
"""
__title__ = 'envkey'
__description__ = (
   'Envkey keeps team secrets encrypted in a single versioned file, '
   'readable only by the team members it names.'
)
__version__ = '0.1.0'
__license__ = 'Apache-2.0'
