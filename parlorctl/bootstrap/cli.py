from parlorctl.bootstrap.deps import get_cli


def main():
    cli = get_cli()

    try:
        if cli.interactive:
            cli.cmdloop()
        else:
            cli.onecmd(cli.args.namespace)
    except KeyboardInterrupt:
        print()
    finally:
        cli.close()


if __name__ == "__main__":
    main()
