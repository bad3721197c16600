import sys

from gpgmime.app import Main


def main():
    sys.exit(Main(sys.argv[1:]))


if __name__ == "__main__":
    main()
