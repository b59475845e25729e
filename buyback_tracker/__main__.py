from buyback_tracker.service import main

main()
