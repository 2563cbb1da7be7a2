"""Small TCP/IP tools: DNS, DHCP, FTP user files, speed testing, a netcat-style relay and a terminal screen model."""

__version__ = "0.1.0"