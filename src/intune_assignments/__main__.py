from intune_assignments import main


if __name__ == "__main__":
    main()
