"""FlowHaven Session Meta information.
   FlowHaven Session keeps user data encrypted end-to-end and cached per user.
"""
__title__ = 'flowhaven_session'
__description__ = (
   'FlowHaven Session keeps user data encrypted end-to-end '
   'and cached per user.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2026 FlowHaven'
__author__ = 'FlowHaven'
__author_email__ = 'dev@flowhaven.app'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/flowhaven/flowhaven-session'
