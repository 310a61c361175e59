from dbkeeper.dbkeeper import cli


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
