# posledger test suite
#
# Run with: pytest
