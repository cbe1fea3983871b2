from contract_rpc.host import main

if __name__ == "__main__":
    main()
