from tileserver.server import main

main()
