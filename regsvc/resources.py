"""Plural resource names and well-known object names of the toolchain API."""

USER_SIGNUP_RESOURCE_PLURAL = "usersignups"
MUR_RESOURCE_PLURAL = "masteruserrecords"
SPACE_RESOURCE_PLURAL = "spaces"
SPACE_BINDING_RESOURCE_PLURAL = "spacebindings"
TOOLCHAIN_STATUS_PLURAL = "toolchainstatuses"
TOOLCHAIN_STATUS_NAME = "toolchain-status"
PROXY_PLUGINS_PLURAL = "proxyplugins"
NS_TEMPLATE_TIER_PLURAL = "nstemplatetiers"
BANNED_USER_RESOURCE_PLURAL = "bannedusers"
SOCIAL_EVENT_RESOURCE_PLURAL = "socialevents"