"""Poll an LDAP directory and classify entries as new, changed or removed."""

__version__ = "0.1.0"
