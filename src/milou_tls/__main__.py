"""Allow ``python -m milou_tls``."""

from milou_tls.cli.main import main

main()
